"""
Pytest fixtures for the resume platform API tests.
Uses mongomock in place of a MongoDB server, a fixed clock and a captured
outbox instead of SMTP.
"""
import os
from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

# Must be set before config loads (get_settings is cached)
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["MONGODB_DB"] = "resume_platform_test"
os.environ["SMTP_USERNAME"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["LLM_API_KEY"] = "test-key"

import app.db.mongodb as mongodb_module
from app.main import app
from app.core.auth import create_session_token
from app.services.account_service import AccountService
from app.services.otp_gate import OtpVerificationGate
from app.services.resume_version_store import ResumeVersionStore


class FixedClock:
    """Injectable clock; only moves when a test advances it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def mongo_db(monkeypatch):
    """Fresh in-memory database per test."""
    db = mongomock.MongoClient()["resume_platform_test"]
    monkeypatch.setattr(mongodb_module, "_db", db)
    yield db


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 3, 1, 12, 0, 0))


@pytest.fixture
def accounts(clock):
    return AccountService(clock=clock)


@pytest.fixture
def store(clock):
    return ResumeVersionStore(clock=clock)


@pytest.fixture
def gate(clock):
    return OtpVerificationGate(clock=clock)


@pytest.fixture
def test_user(accounts):
    """Verified regular account."""
    account = accounts.create_by_admin("Test User", "test@example.com", "testpass123", role="user")
    return account


@pytest.fixture
def other_user(accounts):
    return accounts.create_by_admin("Other User", "other@example.com", "otherpass123", role="user")


@pytest.fixture
def admin_user(accounts):
    return accounts.create_by_admin("Admin", "admin@example.com", "adminpass123", role="admin")


@pytest.fixture
def auth_headers(test_user):
    """Bearer token for test user."""
    return {"Authorization": f"Bearer {create_session_token(test_user)}"}


@pytest.fixture
def admin_headers(admin_user):
    return {"Authorization": f"Bearer {create_session_token(admin_user)}"}


@pytest.fixture
def outbox(monkeypatch):
    """Captures OTP and welcome mails instead of sending them."""
    sent = []

    def fake_send_otp(email, name, code):
        sent.append({"type": "otp", "email": email, "code": code})
        return True

    def fake_send_welcome(email, name):
        sent.append({"type": "welcome", "email": email})
        return True

    monkeypatch.setattr("app.api.routes.auth_routes.send_otp_email", fake_send_otp)
    monkeypatch.setattr("app.api.routes.auth_routes.send_welcome_email", fake_send_welcome)
    return sent


@pytest.fixture
def client():
    """TestClient without the startup event (indexes are not needed with mongomock)."""
    return TestClient(app)


@pytest.fixture
def make_content():
    """Factory for a minimal resume payload as the parser would hand it to the store."""

    def factory(**overrides):
        content = {
            "file_name": "resume.pdf",
            "file_size": 1024,
            "file_type": "application/pdf",
            "parsed_data": {
                "personal_info": {"name": "Test User", "email": "test@example.com"},
                "summary": "Backend developer",
                "skills": {"technical": ["Python", "MongoDB"]},
            },
            "ai_analysis": {"overall_score": 80},
        }
        content.update(overrides)
        return content

    return factory
