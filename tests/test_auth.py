from datetime import timedelta

import security
from database import COLL_USER, utcnow


def test_signup_creates_user_without_session(client, db):
    res = client.post(
        "/auth/signup",
        json={"name": "Asha", "email": "Asha@Example.com", "mobile": "9876543210", "password": "secret123"},
    )
    assert res.status_code == 201
    assert res.json()["success"] is True
    assert "token" not in res.json()

    stored = db[COLL_USER].find_one({"email": "asha@example.com"})
    assert stored["mobile"] == "9876543210"
    assert stored["password_hash"] != "secret123"
    assert stored["is_verified"] is False


def test_signup_rejects_duplicate_email_and_mobile(client, make_user):
    make_user(email="a@example.com", mobile="9876543210")

    dup_email = client.post("/auth/signup", json={"name": "B", "email": "a@example.com", "password": "secret123"})
    assert dup_email.status_code == 400
    assert "email" in dup_email.json()["detail"]

    dup_mobile = client.post(
        "/auth/signup",
        json={"name": "C", "email": "c@example.com", "mobile": "9876543210", "password": "secret123"},
    )
    assert dup_mobile.status_code == 400
    assert "mobile" in dup_mobile.json()["detail"]


def test_signup_rejects_bad_mobile(client):
    res = client.post(
        "/auth/signup", json={"name": "D", "email": "d@example.com", "mobile": "12345", "password": "secret123"}
    )
    assert res.status_code == 400
    assert "10-digit" in res.json()["detail"]


def test_signup_without_mobile_twice(client, make_user):
    make_user(email="one@example.com")
    make_user(email="two@example.com")


def test_login_returns_token_and_user(client, make_user):
    make_user()
    res = client.post("/auth/login", json={"email": "reader@example.com", "password": "secret123"})
    assert res.status_code == 200
    body = res.json()
    assert body["token"]
    assert body["user"]["email"] == "reader@example.com"
    assert "password_hash" not in body["user"]


def test_login_failures_are_indistinguishable(client, make_user):
    make_user()
    wrong_password = client.post("/auth/login", json={"email": "reader@example.com", "password": "nope-nope"})
    unknown_email = client.post("/auth/login", json={"email": "ghost@example.com", "password": "secret123"})
    assert wrong_password.status_code == unknown_email.status_code == 400
    assert wrong_password.json() == unknown_email.json() == {"detail": "Invalid credentials"}


def test_unknown_email_still_runs_a_hash_check(client, make_user, monkeypatch):
    make_user()
    checked = []
    real_verify = security.pwd_context.verify

    def counting_verify(secret, hashed):
        checked.append(hashed)
        return real_verify(secret, hashed)

    monkeypatch.setattr(security.pwd_context, "verify", counting_verify)
    res = client.post("/auth/login", json={"email": "ghost@example.com", "password": "secret123"})
    assert res.status_code == 400
    assert len(checked) == 1
    assert security.verify_password("secret123", None) is False
    assert len(checked) == 2


def test_profile_requires_token(client):
    assert client.get("/auth/profile").status_code == 401
    res = client.get("/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_profile_get_and_update(client, make_user, login):
    make_user()
    make_user(email="taken@example.com")
    headers = {"Authorization": f"Bearer {login()}"}

    profile = client.get("/auth/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["email"] == "reader@example.com"
    assert "password_hash" not in profile.json()

    clash = client.put("/auth/profile", headers=headers, json={"name": "R", "email": "taken@example.com"})
    assert clash.status_code == 400

    res = client.put("/auth/profile", headers=headers, json={"name": "Renamed", "email": "new@example.com"})
    assert res.status_code == 200
    assert res.json()["user"]["name"] == "Renamed"
    assert res.json()["user"]["email"] == "new@example.com"


def test_profile_for_deleted_user_is_404(client, db, make_user, login):
    make_user()
    token = login()
    db[COLL_USER].delete_many({})
    res = client.get("/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 404


def test_google_sign_in_creates_verified_account(client, db, google):
    google.tokens["good"] = {"email": "g@example.com", "sub": "google-1", "name": "Gee", "picture": "http://img"}
    res = client.post("/auth/google", json={"token": "good"})
    assert res.status_code == 200
    assert res.json()["user"]["google_linked"] is True

    stored = db[COLL_USER].find_one({"email": "g@example.com"})
    assert stored["is_verified"] is True
    assert stored["google_id"] == "google-1"
    assert "password_hash" not in stored


def test_google_sign_in_links_existing_account(client, db, google, make_user):
    make_user(email="reader@example.com")
    google.tokens["good"] = {"email": "reader@example.com", "sub": "google-2"}

    res = client.post("/auth/google", json={"token": "good"})
    assert res.status_code == 200
    assert db[COLL_USER].count_documents({}) == 1
    assert db[COLL_USER].find_one({"email": "reader@example.com"})["google_id"] == "google-2"

    # second sign-in finds the same account by subject
    again = client.post("/auth/google", json={"token": "good"})
    assert again.json()["user"]["id"] == res.json()["user"]["id"]


def test_google_sign_in_rejects_untrusted_token(client):
    res = client.post("/auth/google", json={"token": "forged"})
    assert res.status_code == 400
    assert res.json() == {"detail": "Google authentication failed"}


def test_forgot_password_is_generic(client, mailer, make_user):
    make_user()
    known = client.post("/auth/forgot-password", json={"email": "reader@example.com"})
    unknown = client.post("/auth/forgot-password", json={"email": "ghost@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert [to for to, _ in mailer.resets] == ["reader@example.com"]


def test_reset_token_is_single_use(client, mailer, make_user):
    make_user()
    client.post("/auth/forgot-password", json={"email": "reader@example.com"})
    token = mailer.resets[0][1]

    verify = client.get(f"/auth/verify-reset-token/{token}")
    assert verify.status_code == 200
    assert verify.json()["email"] == "reader@example.com"

    reset = client.post(f"/auth/reset-password/{token}", json={"password": "brand-new-pw"})
    assert reset.status_code == 200
    assert mailer.confirmations == ["reader@example.com"]

    assert client.get(f"/auth/verify-reset-token/{token}").status_code == 400
    replay = client.post(f"/auth/reset-password/{token}", json={"password": "another-pw"})
    assert replay.status_code == 400

    assert client.post("/auth/login", json={"email": "reader@example.com", "password": "brand-new-pw"}).status_code == 200
    assert client.post("/auth/login", json={"email": "reader@example.com", "password": "another-pw"}).status_code == 400


def test_reset_token_expires(client, db, mailer, make_user):
    make_user()
    client.post("/auth/forgot-password", json={"email": "reader@example.com"})
    token = mailer.resets[0][1]
    db[COLL_USER].update_one({"reset_token": token}, {"$set": {"reset_expires": utcnow() - timedelta(seconds=1)}})

    assert client.get(f"/auth/verify-reset-token/{token}").status_code == 400
    assert client.post(f"/auth/reset-password/{token}", json={"password": "brand-new-pw"}).status_code == 400


def test_reset_rejects_short_password_without_consuming_token(client, mailer, make_user):
    make_user()
    client.post("/auth/forgot-password", json={"email": "reader@example.com"})
    token = mailer.resets[0][1]

    short = client.post(f"/auth/reset-password/{token}", json={"password": "123"})
    assert short.status_code == 400
    assert "at least 6" in short.json()["detail"]
    assert client.get(f"/auth/verify-reset-token/{token}").status_code == 200
