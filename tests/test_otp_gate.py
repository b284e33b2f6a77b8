"""Tests for the OTP verification gate."""
import pytest

from app.core.errors import AlreadyVerified, InvalidFormat, InvalidOrExpired, NotFound, RateLimited
from app.services.otp_gate import generate_otp, OTP_PATTERN


@pytest.fixture
def new_user(accounts):
    """Self-registered, unverified account."""
    return accounts.register("New User", "New.User@Example.com", "secret123")


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


def test_generated_codes_are_six_digits():
    codes = [generate_otp() for _ in range(200)]
    assert all(OTP_PATTERN.match(code) for code in codes)
    assert len(set(codes)) > 1


def test_issue_code_stores_code_and_expiry(gate, new_user, clock, mongo_db):
    code = gate.issue_code(new_user["_id"])

    account = mongo_db["accounts"].find_one({"_id": new_user["_id"]})
    assert account["otp_code"] == code
    assert (account["otp_expires_at"] - clock()).total_seconds() == 10 * 60


def test_reissue_replaces_previous_code(gate, new_user):
    first = gate.issue_code(new_user["_id"])
    second = gate.issue_code(new_user["_id"])
    if first == second:
        pytest.skip("random codes collided")

    with pytest.raises(InvalidOrExpired):
        gate.verify_code(new_user["_id"], first)
    assert gate.verify_code(new_user["_id"], second)["email_verified"] is True


def test_full_verification_flow(gate, new_user, mongo_db):
    code = gate.issue_code(new_user["_id"])
    assert OTP_PATTERN.match(code)

    with pytest.raises(InvalidOrExpired):
        gate.verify_code(new_user["_id"], _wrong(code))

    verified = gate.verify_code(new_user["_id"], code)
    assert verified["email_verified"] is True
    assert "otp_code" not in verified
    assert "password_hash" not in verified

    with pytest.raises(AlreadyVerified):
        gate.verify_code(new_user["_id"], code)

    stored = mongo_db["accounts"].find_one({"_id": new_user["_id"]})
    assert "otp_code" not in stored
    assert "otp_expires_at" not in stored


@pytest.mark.parametrize("submitted", ["12345", "1234567", "12a456", "", " 12345", None, 123456])
def test_malformed_code_changes_nothing(gate, new_user, submitted, mongo_db):
    code = gate.issue_code(new_user["_id"])

    with pytest.raises(InvalidFormat):
        gate.verify_code(new_user["_id"], submitted)

    stored = mongo_db["accounts"].find_one({"_id": new_user["_id"]})
    assert stored["otp_code"] == code
    assert stored["email_verified"] is False


def test_expired_code_is_rejected(gate, new_user, clock):
    code = gate.issue_code(new_user["_id"])
    clock.advance(minutes=10, seconds=1)

    with pytest.raises(InvalidOrExpired):
        gate.verify_code(new_user["_id"], code)


def test_code_valid_until_expiry(gate, new_user, clock):
    code = gate.issue_code(new_user["_id"])
    clock.advance(minutes=9, seconds=59)

    assert gate.verify_code(new_user["_id"], code)["email_verified"] is True


def test_no_outstanding_code_is_rejected(gate, new_user):
    with pytest.raises(InvalidOrExpired):
        gate.verify_code(new_user["_id"], "123456")


def test_wrong_expired_and_absent_share_message(gate, new_user, clock):
    messages = set()
    with pytest.raises(InvalidOrExpired) as absent:
        gate.verify_code(new_user["_id"], "123456")
    messages.add(absent.value.message)

    code = gate.issue_code(new_user["_id"])
    with pytest.raises(InvalidOrExpired) as wrong:
        gate.verify_code(new_user["_id"], _wrong(code))
    messages.add(wrong.value.message)

    clock.advance(minutes=11)
    with pytest.raises(InvalidOrExpired) as expired:
        gate.verify_code(new_user["_id"], code)
    messages.add(expired.value.message)

    assert messages == {"Invalid or expired OTP. Please request a new one."}


def test_issue_on_verified_account_fails(gate, test_user):
    with pytest.raises(AlreadyVerified):
        gate.issue_code(test_user["_id"])


def test_unknown_account(gate):
    with pytest.raises(NotFound):
        gate.issue_code("65f000000000000000000000")


def test_resend_allowed_without_outstanding_code(gate, new_user):
    assert gate.can_resend(new_user["_id"]).allowed is True


def test_resend_cooldown(gate, new_user, clock):
    gate.issue_code(new_user["_id"])

    decision = gate.can_resend(new_user["_id"])
    assert decision.allowed is False
    assert decision.wait_minutes == 8

    clock.advance(minutes=7, seconds=30)
    assert gate.can_resend(new_user["_id"]).wait_minutes == 1

    clock.advance(seconds=30)
    assert gate.can_resend(new_user["_id"]).allowed is True


def test_resend_allowed_after_expiry(gate, new_user, clock):
    gate.issue_code(new_user["_id"])
    clock.advance(minutes=15)
    assert gate.can_resend(new_user["_id"]).allowed is True


def test_ensure_can_resend_raises_with_wait(gate, new_user):
    gate.issue_code(new_user["_id"])

    with pytest.raises(RateLimited) as exc:
        gate.ensure_can_resend(new_user["_id"])

    assert exc.value.wait_minutes == 8
    assert exc.value.message == "Please wait 8 minutes before requesting a new OTP."
