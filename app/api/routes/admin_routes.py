"""
Admin Routes (admin role only)

GET /admin/users - List accounts (pagination, role/search/verified filters)
POST /admin/users - Create an account (already verified)
GET /admin/users/{user_id} - Account detail with active resume and resume count
PUT /admin/users/{user_id} - Update an account
DELETE /admin/users/{user_id} - Soft delete (?permanent=true removes account and resumes)
GET /admin/stats - Platform statistics
"""

import math
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query

from app.core.auth import get_current_admin
from app.db.mongodb import serialize_doc
from app.services.account_service import get_account_service, public_account
from app.services.resume_version_store import get_resume_store, SUMMARY_PROJECTION
from app.schemas.schemas import (
    AdminUserCreate, AdminUserUpdate, Pagination, UserListResponse, MessageResponse
)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/users", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[str] = None,
    search: Optional[str] = None,
    verified: Optional[bool] = None,
    admin: dict = Depends(get_current_admin),
):
    """List accounts, newest first. Admin accounts only appear when filtering by role=admin."""
    accounts, total = get_account_service().list_accounts(
        page=page, limit=limit, role=role, search=search, verified=verified
    )
    return UserListResponse(
        users=[public_account(a) for a in accounts],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


@router.post("/users", status_code=201)
async def create_user(data: AdminUserCreate, admin: dict = Depends(get_current_admin)):
    """Create an account of any role. No email verification needed."""
    account = get_account_service().create_by_admin(
        name=data.name,
        email=data.email,
        password=data.password,
        role=data.role.value,
        phone=data.phone,
        company_info=data.company_info.model_dump(exclude_none=True) if data.company_info else None,
    )
    return {"success": True, "message": "User created successfully", "user": public_account(account)}


@router.get("/users/{user_id}")
async def get_user(user_id: str, admin: dict = Depends(get_current_admin)):
    """Account detail, its active resume summary and how many versions it has."""
    account = get_account_service().get_by_id(user_id)
    store = get_resume_store()

    # Read from the resume documents, not the account's cached pointer
    active_resume = store.get_active(account["_id"])

    return {
        "success": True,
        "user": public_account(account),
        "active_resume": serialize_doc(active_resume, exclude=tuple(SUMMARY_PROJECTION)),
        "resume_count": store.count_for_account(account["_id"]),
    }


@router.put("/users/{user_id}")
async def update_user(user_id: str, data: AdminUserUpdate, admin: dict = Depends(get_current_admin)):
    """Update name, email, role, phone, verification, active flag or company info."""
    changes = data.model_dump(exclude_none=True)
    if "role" in changes:
        changes["role"] = data.role.value
    if data.company_info is not None:
        changes["company_info"] = data.company_info.model_dump(exclude_none=True)

    account = get_account_service().update(user_id, changes)
    return {"success": True, "message": "User updated successfully", "user": public_account(account)}


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    permanent: bool = Query(False),
    admin: dict = Depends(get_current_admin),
):
    """Soft delete by default; permanent=true also deletes every resume version."""
    if user_id == admin["user_id"]:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    service = get_account_service()
    if permanent:
        service.hard_delete(user_id)
        return MessageResponse(message="User and associated data deleted successfully")

    service.soft_delete(user_id)
    return MessageResponse(message="User deleted successfully")


@router.get("/stats")
async def get_stats(admin: dict = Depends(get_current_admin)):
    """Platform statistics for the admin dashboard."""
    return {"success": True, "stats": get_account_service().platform_stats()}
