"""
Error taxonomy for the core services.

Every failure a service can report is a CoreError subclass carrying a
machine-readable kind and the HTTP status the API layer answers with.
app.main registers one exception handler for CoreError, so routes never
have to translate these by hand.

Messages are deliberately generic where they could leak information:
- a resume owned by someone else is reported exactly like a missing one
- a wrong, expired or absent OTP all produce the same message
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    not_found = "not_found"
    invalid_format = "invalid_format"
    already_verified = "already_verified"
    invalid_or_expired = "invalid_or_expired"
    rate_limited = "rate_limited"
    conflict = "conflict"
    storage_failure = "storage_failure"


class CoreError(Exception):
    kind: ErrorKind = ErrorKind.storage_failure
    status_code: int = 500
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(CoreError):
    kind = ErrorKind.not_found
    status_code = 404
    default_message = "Not found"


class InvalidFormat(CoreError):
    kind = ErrorKind.invalid_format
    status_code = 400
    default_message = "Invalid OTP format. OTP must be 6 digits."


class AlreadyVerified(CoreError):
    kind = ErrorKind.already_verified
    status_code = 400
    default_message = "Email already verified. Please login."


class InvalidOrExpired(CoreError):
    kind = ErrorKind.invalid_or_expired
    status_code = 400
    default_message = "Invalid or expired OTP. Please request a new one."


class RateLimited(CoreError):
    kind = ErrorKind.rate_limited
    status_code = 429

    def __init__(self, wait_minutes: int):
        self.wait_minutes = wait_minutes
        super().__init__(f"Please wait {wait_minutes} minutes before requesting a new OTP.")


class Conflict(CoreError):
    kind = ErrorKind.conflict
    status_code = 409
    default_message = "User with this email already exists"


class StorageFailure(CoreError):
    kind = ErrorKind.storage_failure
    status_code = 500
    default_message = "Database operation failed. Please try again."


# Shared not-found messages (ownership violations use the same text)
RESUME_NOT_FOUND = "Resume not found"
ACCOUNT_NOT_FOUND = "User not found"
