"""
Authentication Routes

POST /auth/register - Register new user (unverified, OTP mailed)
POST /auth/verify-otp - Verify email with the 6-digit code, get JWT token
POST /auth/resend-otp - Issue a fresh code (throttled)
POST /auth/login - Login and get JWT token
GET /auth/me - Get current user info
"""

from fastapi import APIRouter, HTTPException, Depends

from app.core.auth import create_session_token, get_current_user
from app.core.errors import NotFound, ACCOUNT_NOT_FOUND
from app.core.logging_config import get_logger
from app.services.account_service import get_account_service, public_account
from app.services.email_service import send_otp_email, send_welcome_email
from app.services.otp_gate import get_otp_gate
from app.schemas.schemas import (
    RegisterRequest, LoginRequest, VerifyOtpRequest, ResendOtpRequest,
    AccountResponse, AuthResponse, MessageResponse
)

logger = get_logger("api.auth")

router = APIRouter(prefix="/auth", tags=["Authentication"])


def account_response(account: dict) -> AccountResponse:
    return AccountResponse(
        id=str(account["_id"]),
        name=account.get("name", ""),
        email=account["email"],
        role=account["role"],
        email_verified=bool(account.get("email_verified")),
        has_active_resume=bool(account.get("has_active_resume")),
        profile_completed=bool(account.get("profile_completed")),
    )


def _account_by_email(email: str) -> dict:
    account = get_account_service().get_by_email(email)
    if account is None:
        raise NotFound(ACCOUNT_NOT_FOUND)
    return account


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(request: RegisterRequest):
    """
    Register a new user account.

    Only regular users can self-register. A verification code is mailed;
    login is possible once the email is verified.
    """
    account = get_account_service().register(request.name, request.email, request.password)
    code = get_otp_gate().issue_code(account["_id"])
    sent = send_otp_email(account["email"], account["name"], code)

    message = "Registration successful. Please check your email for the verification code."
    if not sent:
        message = "Registration successful, but the verification email could not be sent. Please request a new code."
    return AuthResponse(message=message, user=account_response(account))


@router.post("/verify-otp", response_model=AuthResponse)
async def verify_otp(request: VerifyOtpRequest):
    """Verify the emailed code. Returns an access token on success."""
    account = _account_by_email(request.email)
    verified = get_otp_gate().verify_code(account["_id"], request.otp)

    send_welcome_email(verified["email"], verified.get("name", ""))

    return AuthResponse(
        message="Email verified successfully! Welcome aboard.",
        access_token=create_session_token(verified),
        user=account_response(verified),
    )


@router.post("/resend-otp", response_model=MessageResponse)
async def resend_otp(request: ResendOtpRequest):
    """Replace the outstanding code with a new one and mail it."""
    account = _account_by_email(request.email)
    gate = get_otp_gate()
    if not account.get("email_verified"):
        gate.ensure_can_resend(account["_id"])
    code = gate.issue_code(account["_id"])

    if not send_otp_email(account["email"], account.get("name", ""), code):
        raise HTTPException(status_code=500, detail="Failed to send OTP email. Please try again later.")

    return MessageResponse(message="New verification code sent successfully! Please check your email.")


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest):
    """
    Login and receive JWT access token.

    Include token in requests: Authorization: Bearer <token>
    """
    service = get_account_service()
    account = service.authenticate(request.email, request.password)
    if account is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not account.get("is_active", True):
        raise HTTPException(status_code=403, detail="Your account has been deactivated. Please contact support.")

    if not account.get("email_verified"):
        raise HTTPException(status_code=403, detail="Please verify your email before logging in.")

    service.record_login(account["_id"])
    logger.info("Login account_id=%s", account["_id"])

    return AuthResponse(
        message="Login successful",
        access_token=create_session_token(account),
        user=account_response(account),
    )


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Get current authenticated user's info."""
    account = get_account_service().get_by_id(user["user_id"])
    return {"success": True, "user": public_account(account)}
