from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from fuel import FuelFetchError, FuelPriceService
from main import create_app
from security import GoogleAuthError

FIXED_NOW = datetime(2026, 10, 18, 9, 0, 0)


class FakeMailer:
    def __init__(self):
        self.resets = []
        self.confirmations = []

    def send_password_reset(self, to, token):
        self.resets.append((to, token))

    def send_password_changed(self, to):
        self.confirmations.append(to)


class FakeGoogleVerifier:
    def __init__(self):
        self.tokens = {}

    def verify(self, id_token):
        if id_token not in self.tokens:
            raise GoogleAuthError("bad token")
        return self.tokens[id_token]


class FakeFuelProvider:
    """Per-city canned payloads; cities without one fail."""

    def __init__(self):
        self.payloads = {}
        self.calls = []

    def __call__(self, city):
        self.calls.append(city)
        if city not in self.payloads:
            raise FuelFetchError("API request timed out")
        return self.payloads[city]


def provider_payload(city, petrol, diesel, cng=None):
    fuel = {"petrol": {"retailPrice": petrol}, "diesel": {"retailPrice": diesel}}
    if cng is not None:
        fuel["cng"] = {"retailPrice": cng}
    return {"cityName": city, "fuel": fuel}


@pytest.fixture
def settings():
    return Settings(
        jwt_secret="test-secret",
        google_client_id="test-client-id",
        fuel_scheduler_enabled=False,
        like_rate_limit=30,
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["content_platform_test"]


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def google():
    return FakeGoogleVerifier()


@pytest.fixture
def provider():
    return FakeFuelProvider()


@pytest.fixture
def fuel_service(db, settings, provider):
    return FuelPriceService(db, settings, fetch=provider, now=lambda: FIXED_NOW)


@pytest.fixture
def app(settings, db, mailer, google, fuel_service):
    return create_app(settings, db=db, mailer=mailer, google_verifier=google, fuel_service=fuel_service)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(client):
    def _make(email="reader@example.com", password="secret123", name="Reader", mobile=None):
        body = {"name": name, "email": email, "password": password}
        if mobile:
            body["mobile"] = mobile
        res = client.post("/auth/signup", json=body)
        assert res.status_code == 201, res.text
        return body
    return _make


@pytest.fixture
def login(client):
    def _login(email="reader@example.com", password="secret123"):
        res = client.post("/auth/login", json={"email": email, "password": password})
        assert res.status_code == 200, res.text
        return res.json()["token"]
    return _login


@pytest.fixture
def make_article(client):
    def _make(title="Solar farms expand", category="Environment"):
        res = client.post("/articles", json={"title": title, "category": category, "content": "..."})
        assert res.status_code == 201, res.text
        return res.json()
    return _make
