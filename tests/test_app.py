from datetime import timedelta

import pytest
import requests
from fastapi.testclient import TestClient
from jose import jwt
from pymongo.errors import PyMongoError

from config import Settings
from database import COLL_LIKE
from mailer import EmailError, Mailer
from main import create_app
from security import GoogleAuthError, GoogleVerifier, create_access_token, decode_access_token


def test_root_and_health(client):
    assert client.get("/").status_code == 200
    health = client.get("/test").json()
    assert health["connection_status"] == "Connected"
    assert health["database_name"] == "content_platform_test"


def test_articles_crud(client, make_article):
    tech = make_article(title="Chips", category="Technology")
    make_article(title="Rain", category="Environment")

    assert tech["likes"] == 0
    assert client.get(f"/articles/{tech['id']}").json()["title"] == "Chips"
    assert [a["title"] for a in client.get("/articles", params={"category": "Technology"}).json()] == ["Chips"]
    assert len(client.get("/articles").json()) == 2
    assert client.get("/articles/zzz").status_code == 400
    assert client.post("/articles", json={"title": "x", "category": "Gossip"}).status_code == 400


def test_unexpected_errors_are_sanitized(app, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("secret connection string mongodb://admin:pw@host")

    monkeypatch.setattr(app.state.fuel_service, "today_snapshot", boom)
    with TestClient(app, raise_server_exceptions=False) as client:
        res = client.get("/fuel/tamilnadu")
    assert res.status_code == 500
    assert res.json() == {"detail": "Internal server error"}


def test_database_errors_are_sanitized(app, monkeypatch):
    def boom(*args, **kwargs):
        raise PyMongoError("connection refused on 10.0.0.5")

    monkeypatch.setattr(app.state.fuel_service, "stored_for_today", boom)
    with TestClient(app) as client:
        res = client.get("/fuel/stored")
        assert res.status_code == 500
        assert "10.0.0.5" not in res.text
        # snapshot read falls back to mock data instead
        assert client.get("/fuel/tamilnadu").json()["source"] == "mock"


def test_access_token_round_trip_and_expiry():
    settings = Settings(jwt_secret="s")
    token = create_access_token(settings, {"sub": "abc"})
    assert decode_access_token(settings, token)["sub"] == "abc"

    expired = create_access_token(settings, {"sub": "abc"}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(jwt.JWTError):
        decode_access_token(settings, expired)


def test_google_verifier_requires_client_id():
    with pytest.raises(GoogleAuthError):
        GoogleVerifier(None, fetch_certs=lambda: {"keys": []}).verify("anything")


def test_google_verifier_rejects_unsigned_token():
    forged = jwt.encode(
        {"email": "x@example.com", "sub": "1", "aud": "cid", "iss": "accounts.google.com"}, "k", algorithm="HS256"
    )
    with pytest.raises(GoogleAuthError):
        GoogleVerifier("cid", fetch_certs=lambda: {"keys": []}).verify(forged)


def test_google_verifier_cert_fetch_failure():
    def unavailable():
        raise requests.ConnectionError("down")

    with pytest.raises(GoogleAuthError):
        GoogleVerifier("cid", fetch_certs=unavailable).verify("a.b.c")


def test_mailer_skips_without_api_key(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("should not send")

    monkeypatch.setattr(requests, "post", fail)
    Mailer(Settings()).send_password_reset("a@example.com", "tok")


def test_mailer_posts_reset_link(monkeypatch):
    sent = {}

    class Ok:
        def raise_for_status(self):
            pass

    def post(url, json, headers, timeout):
        sent.update(url=url, json=json, headers=headers)
        return Ok()

    monkeypatch.setattr(requests, "post", post)
    settings = Settings(email_api_key="key", frontend_url="https://news.example")
    Mailer(settings).send_password_reset("a@example.com", "tok123")

    assert sent["json"]["to"] == ["a@example.com"]
    assert "https://news.example/reset-password/tok123" in sent["json"]["html"]
    assert sent["headers"]["Authorization"] == "Bearer key"


def test_mailer_wraps_transport_errors(monkeypatch):
    def post(*args, **kwargs):
        raise requests.Timeout()

    monkeypatch.setattr(requests, "post", post)
    with pytest.raises(EmailError):
        Mailer(Settings(email_api_key="key")).send("a@example.com", "s", "<p>x</p>")


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "from-env")
    monkeypatch.setenv("LIKE_RATE_LIMIT", "5")
    monkeypatch.setenv("FUEL_SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("FRONTEND_URL", "https://site.example/")
    settings = Settings.from_env()
    assert settings.jwt_secret == "from-env"
    assert settings.like_rate_limit == 5
    assert settings.fuel_scheduler_enabled is False
    assert settings.frontend_url == "https://site.example"


def test_startup_creates_indexes_and_runs_scheduler(db, mailer, google, fuel_service):
    app = create_app(
        Settings(fuel_scheduler_enabled=True, fuel_schedule_hour=3),
        db=db, mailer=mailer, google_verifier=google, fuel_service=fuel_service,
    )
    scheduler = app.state.fuel_scheduler
    with TestClient(app):
        assert scheduler._thread is not None and scheduler._thread.is_alive()
        unique = [i for i in db[COLL_LIKE].index_information().values() if i.get("unique")]
        assert unique
    assert scheduler._thread is None
