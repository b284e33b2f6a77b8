"""
OTP Verification Gate - email verification with one-time codes.

STATES (fields on the account document):
    no code issued  -> otp_code / otp_expires_at absent, email_verified False
    code issued     -> otp_code + otp_expires_at set
    code expired    -> same fields, otp_expires_at in the past
    verified        -> email_verified True, otp fields removed (terminal)

- Issuing a code overwrites the previous one (last writer wins)
- Resending is throttled: only allowed once the outstanding code has
  otp_resend_window_minutes (default 2) or less left to live. The cooldown
  is derived from otp_expires_at, so it is tied to the code lifetime.
- Verification is a single conditional update on the CURRENT code, so a
  code is consumed exactly once even with concurrent submissions.
- Expiry is checked when a code is submitted; nothing sweeps old codes.

This module never sends anything. Delivery is email_service's job and a
failed delivery leaves the issued code valid.
"""

import math
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from pymongo import ReturnDocument
from pymongo.collection import Collection

from app.core.config import get_settings
from app.core.errors import (
    AlreadyVerified, InvalidFormat, InvalidOrExpired, NotFound, RateLimited, ACCOUNT_NOT_FOUND,
)
from app.core.logging_config import get_logger
from app.db.mongodb import get_collection, mongo_errors, to_object_id, COLLECTIONS
from app.utils.timeutils import utcnow

logger = get_logger("services.otp")

OTP_LENGTH = 6
OTP_PATTERN = re.compile(r"^[0-9]{6}$")


def generate_otp(length: int = OTP_LENGTH) -> str:
    """Fixed-width numeric code; every digit drawn independently from the OS CSPRNG."""
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


@dataclass(frozen=True)
class ResendDecision:
    allowed: bool
    wait_minutes: int = 0


class OtpVerificationGate:
    """
    Gates account activation behind a 6-digit, time-boxed, single-use code.
    """

    def __init__(self, clock: Callable[[], datetime] = None):
        settings = get_settings()
        self.accounts: Collection = get_collection(COLLECTIONS["accounts"])
        self.clock = clock or utcnow
        self.expiry = timedelta(minutes=settings.otp_expiry_minutes)
        self.resend_window = timedelta(minutes=settings.otp_resend_window_minutes)

    def _load(self, account_id) -> dict:
        oid = to_object_id(account_id)
        account = None
        if oid is not None:
            with mongo_errors("load account for otp"):
                account = self.accounts.find_one(
                    {"_id": oid, "deleted_at": None},
                    {"email_verified": 1, "otp_code": 1, "otp_expires_at": 1},
                )
        if account is None:
            raise NotFound(ACCOUNT_NOT_FOUND)
        return account

    def issue_code(self, account_id) -> str:
        """
        Generate and store a fresh code, replacing any outstanding one.

        Returns:
            The 6-digit code (to be handed to the delivery collaborator)
        """
        account = self._load(account_id)
        if account.get("email_verified"):
            raise AlreadyVerified()

        code = generate_otp()
        expires_at = self.clock() + self.expiry
        with mongo_errors("issue otp"):
            result = self.accounts.update_one(
                {"_id": account["_id"], "email_verified": {"$ne": True}},
                {"$set": {"otp_code": code, "otp_expires_at": expires_at, "updated_at": self.clock()}},
            )
        if result.matched_count == 0:
            # Verified between our read and write
            raise AlreadyVerified()

        logger.info("Issued OTP account_id=%s expires_at=%s", account["_id"], expires_at.isoformat())
        return code

    def can_resend(self, account_id) -> ResendDecision:
        """
        Allowed when no code is outstanding or the outstanding one is about
        to expire. Otherwise reports the wait in whole minutes (rounded up).
        """
        account = self._load(account_id)
        expires_at = account.get("otp_expires_at")
        if not account.get("otp_code") or expires_at is None:
            return ResendDecision(allowed=True)

        remaining = expires_at - self.clock()
        if remaining <= self.resend_window:
            return ResendDecision(allowed=True)

        wait = remaining - self.resend_window
        return ResendDecision(allowed=False, wait_minutes=math.ceil(wait.total_seconds() / 60))

    def ensure_can_resend(self, account_id) -> None:
        """Raise RateLimited when a resend is not allowed yet."""
        decision = self.can_resend(account_id)
        if not decision.allowed:
            raise RateLimited(decision.wait_minutes)

    def verify_code(self, account_id, submitted_code) -> dict:
        """
        Check a submitted code and, on success, mark the email verified.

        Raises:
            InvalidFormat: not exactly 6 digits (nothing changes)
            AlreadyVerified: account already verified (also for replays)
            InvalidOrExpired: no code, wrong code or expired code
        Returns:
            The updated account document
        """
        if not isinstance(submitted_code, str) or not OTP_PATTERN.match(submitted_code):
            raise InvalidFormat()

        account = self._load(account_id)
        if account.get("email_verified"):
            raise AlreadyVerified()

        now = self.clock()
        with mongo_errors("verify otp"):
            verified = self.accounts.find_one_and_update(
                {
                    "_id": account["_id"],
                    "email_verified": {"$ne": True},
                    "otp_code": submitted_code,
                    "otp_expires_at": {"$gte": now},
                },
                {
                    "$set": {"email_verified": True, "verified_at": now, "updated_at": now},
                    "$unset": {"otp_code": "", "otp_expires_at": ""},
                },
                projection={"password_hash": 0},
                return_document=ReturnDocument.AFTER,
            )

        if verified is None:
            # Lost a race against another successful submission?
            if self._load(account_id).get("email_verified"):
                raise AlreadyVerified()
            logger.info("OTP verification failed account_id=%s", account["_id"])
            raise InvalidOrExpired()

        logger.info("Email verified account_id=%s", account["_id"])
        return verified


def get_otp_gate() -> OtpVerificationGate:
    """Get OTP gate instance."""
    return OtpVerificationGate()
