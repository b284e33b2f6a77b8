"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
Stored documents stay plain dicts (see resume_content for their shape);
these models only describe what the API accepts and returns.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Any, Dict
from enum import Enum


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    user = "user"
    company = "company"
    admin = "admin"


# ============================================================
# AUTH SCHEMAS
# ============================================================

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class VerifyOtpRequest(BaseModel):
    email: EmailStr
    # Format (exactly 6 digits) is checked by the OTP gate
    otp: str

class ResendOtpRequest(BaseModel):
    email: EmailStr

class AccountResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    email_verified: bool = False
    has_active_resume: bool = False
    profile_completed: bool = False

class AuthResponse(BaseModel):
    success: bool = True
    message: str
    access_token: Optional[str] = None
    token_type: str = "bearer"
    user: AccountResponse


# ============================================================
# RESUME SCHEMAS
# ============================================================

class ResumeCreate(BaseModel):
    """Save an already-parsed resume (e.g. after the user reviewed the upload result)."""
    file_name: str = Field(..., min_length=1)
    file_url: str = ""
    file_size: int = Field(0, ge=0)
    file_type: str = "application/pdf"
    parsed_data: Dict[str, Any]
    social_links: Optional[Dict[str, Any]] = None
    ai_analysis: Optional[Dict[str, Any]] = None
    notes: str = ""

class ResumeUpdate(BaseModel):
    """Partial edit. Top-level keys of each object replace the stored ones."""
    parsed_data: Optional[Dict[str, Any]] = None
    social_links: Optional[Dict[str, Any]] = None
    ai_analysis: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None


# ============================================================
# ADMIN SCHEMAS
# ============================================================

class CompanyInfo(BaseModel):
    company_name: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[str] = None
    company_size: Optional[str] = None
    description: Optional[str] = None

class AdminUserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: UserRole = UserRole.user
    phone: Optional[str] = None
    company_info: Optional[CompanyInfo] = None

class AdminUserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    phone: Optional[str] = None
    email_verified: Optional[bool] = None
    is_active: Optional[bool] = None
    company_info: Optional[CompanyInfo] = None

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

class UserListResponse(BaseModel):
    success: bool = True
    users: List[Dict[str, Any]]
    pagination: Pagination


# ============================================================
# COMMON SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True

class ErrorResponse(BaseModel):
    success: bool = False
    message: str
