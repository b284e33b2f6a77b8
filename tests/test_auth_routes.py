"""Tests for /api/auth: registration, OTP verification, resend throttling, login."""
import pytest


def _register(client, email="jane@example.com", password="secret123", name="Jane"):
    return client.post("/api/auth/register", json={"name": name, "email": email, "password": password})


def _last_code(outbox):
    return [m for m in outbox if m["type"] == "otp"][-1]["code"]


@pytest.fixture
def otp_clock(monkeypatch, clock):
    """Route-level OTP services pick this clock up as their default."""
    monkeypatch.setattr("app.services.otp_gate.utcnow", clock)
    return clock


def test_register_sends_code_and_returns_unverified_user(client, outbox):
    r = _register(client, email="Jane@Example.com")
    assert r.status_code == 201
    data = r.json()
    assert data["success"] is True
    assert data["access_token"] is None
    assert data["user"]["email"] == "jane@example.com"
    assert data["user"]["role"] == "user"
    assert data["user"]["email_verified"] is False

    assert len(outbox) == 1
    assert outbox[0]["email"] == "jane@example.com"
    assert len(outbox[0]["code"]) == 6


def test_register_duplicate_email(client, outbox):
    _register(client)
    r = _register(client, email="JANE@example.com")
    assert r.status_code == 409
    assert r.json() == {"success": False, "message": "User with this email already exists"}


def test_register_short_password(client, outbox):
    r = _register(client, password="123")
    assert r.status_code == 422


def test_register_survives_email_failure(client, monkeypatch, mongo_db):
    monkeypatch.setattr("app.api.routes.auth_routes.send_otp_email", lambda *args: False)
    r = _register(client)
    assert r.status_code == 201
    assert "could not be sent" in r.json()["message"]
    # The issued code is still valid
    assert mongo_db["accounts"].find_one({"email": "jane@example.com"})["otp_code"]


def test_login_requires_verified_email(client, outbox):
    _register(client)
    r = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "secret123"})
    assert r.status_code == 403


def test_verify_otp_flow(client, outbox):
    _register(client)
    code = _last_code(outbox)
    wrong = "000000" if code != "000000" else "111111"

    r = client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": wrong})
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid or expired OTP. Please request a new one."

    r = client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": code})
    assert r.status_code == 200
    data = r.json()
    assert data["access_token"]
    assert data["user"]["email_verified"] is True
    assert outbox[-1]["type"] == "welcome"

    r = client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": code})
    assert r.status_code == 400
    assert r.json()["message"] == "Email already verified. Please login."

    r = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "secret123"})
    assert r.status_code == 200


def test_verify_otp_bad_format(client, outbox):
    _register(client)
    r = client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": "12ab"})
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid OTP format. OTP must be 6 digits."


def test_verify_otp_unknown_email(client):
    r = client.post("/api/auth/verify-otp", json={"email": "ghost@example.com", "otp": "123456"})
    assert r.status_code == 404
    assert r.json()["message"] == "User not found"


def test_expired_code_then_resend(client, outbox, otp_clock):
    _register(client)
    code = _last_code(outbox)

    otp_clock.advance(minutes=11)
    r = client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": code})
    assert r.status_code == 400

    r = client.post("/api/auth/resend-otp", json={"email": "jane@example.com"})
    assert r.status_code == 200
    new_code = _last_code(outbox)

    r = client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": new_code})
    assert r.status_code == 200


def test_resend_is_throttled(client, outbox, otp_clock):
    _register(client)

    r = client.post("/api/auth/resend-otp", json={"email": "jane@example.com"})
    assert r.status_code == 429
    assert r.json()["message"] == "Please wait 8 minutes before requesting a new OTP."

    otp_clock.advance(minutes=8)
    r = client.post("/api/auth/resend-otp", json={"email": "jane@example.com"})
    assert r.status_code == 200
    assert len([m for m in outbox if m["type"] == "otp"]) == 2


def test_resend_for_verified_account(client, outbox, test_user):
    r = client.post("/api/auth/resend-otp", json={"email": "test@example.com"})
    assert r.status_code == 400
    assert r.json()["message"] == "Email already verified. Please login."


def test_resend_delivery_failure(client, outbox, otp_clock, monkeypatch):
    _register(client)
    otp_clock.advance(minutes=9)
    monkeypatch.setattr("app.api.routes.auth_routes.send_otp_email", lambda *args: False)

    r = client.post("/api/auth/resend-otp", json={"email": "jane@example.com"})
    assert r.status_code == 500
    assert r.json()["success"] is False


def test_login_wrong_password(client, test_user):
    r = client.post("/api/auth/login", json={"email": "test@example.com", "password": "nope"})
    assert r.status_code == 401
    assert r.json() == {"success": False, "message": "Invalid email or password"}


def test_login_deactivated_account(client, accounts, test_user):
    accounts.update(test_user["_id"], {"is_active": False})
    r = client.post("/api/auth/login", json={"email": "test@example.com", "password": "testpass123"})
    assert r.status_code == 403


def test_login_and_me(client, test_user, mongo_db):
    r = client.post("/api/auth/login", json={"email": "TEST@example.com", "password": "testpass123"})
    assert r.status_code == 200
    token = r.json()["access_token"]
    assert mongo_db["accounts"].find_one({"_id": test_user["_id"]})["last_login_at"] is not None

    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    user = r.json()["user"]
    assert user["email"] == "test@example.com"
    assert user["_id"] == str(test_user["_id"])
    assert "password_hash" not in user


def test_me_requires_auth(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json()["message"] == "Not authenticated"


def test_me_with_bad_token(client):
    r = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
