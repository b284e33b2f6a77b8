"""
Account Service - CRUD for the accounts collection.

Roles:
- user     : job seeker, self-registers, must verify email with an OTP
- company  : organization account, created by an admin
- admin    : administrator, created by an admin or scripts/create_admin.py

Accounts created by an admin are verified from the start.
Deletion is soft (deleted_at timestamp) unless an admin explicitly asks
for a permanent delete, which also removes every resume version.
"""

import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from app.core.auth import hash_password, verify_password
from app.core.errors import Conflict, NotFound, ACCOUNT_NOT_FOUND
from app.core.logging_config import get_logger
from app.db.mongodb import get_collection, mongo_errors, serialize_doc, to_object_id, COLLECTIONS
from app.services.resume_version_store import ResumeVersionStore
from app.utils.timeutils import utcnow

logger = get_logger("services.accounts")

ROLES = ("user", "company", "admin")

# Never leaves the service layer
PRIVATE_FIELDS = ("password_hash", "otp_code", "otp_expires_at", "resume_lock")

UPDATABLE_FIELDS = ("name", "email", "role", "phone", "email_verified", "is_active")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def public_account(account: dict) -> dict:
    """JSON-safe account without credentials or OTP state."""
    return serialize_doc(account, exclude=PRIVATE_FIELDS)


class AccountService:
    """
    Handles account storage.
    """

    def __init__(self, clock: Callable[[], datetime] = None):
        self.collection: Collection = get_collection(COLLECTIONS["accounts"])
        self.clock = clock or utcnow
        self.resumes = ResumeVersionStore(clock=self.clock)

    def _insert(self, doc: dict) -> dict:
        with mongo_errors("insert account"):
            if self.collection.find_one({"email": doc["email"]}, {"_id": 1}):
                raise Conflict()
            try:
                doc["_id"] = self.collection.insert_one(doc).inserted_id
            except DuplicateKeyError:
                # Unique index on email caught a concurrent registration
                raise Conflict()
        return doc

    def _new_account(self, name: str, email: str, password: str, role: str, email_verified: bool) -> dict:
        now = self.clock()
        return {
            "name": name.strip(),
            "email": normalize_email(email),
            "password_hash": hash_password(password),
            "role": role,
            "phone": None,
            "email_verified": email_verified,
            "is_active": True,
            "deleted_at": None,
            "active_resume_id": None,
            "has_active_resume": False,
            "resume_version_seq": 0,
            "profile_completed": False,
            "last_login_at": None,
            "created_at": now,
            "updated_at": now,
        }

    def register(self, name: str, email: str, password: str) -> dict:
        """Self-registration: always a regular, unverified account."""
        account = self._insert(self._new_account(name, email, password, "user", email_verified=False))
        logger.info("Registered account_id=%s", account["_id"])
        return account

    def create_by_admin(
        self,
        name: str,
        email: str,
        password: str,
        role: str,
        phone: Optional[str] = None,
        company_info: Optional[dict] = None,
    ) -> dict:
        """Admin-created accounts skip email verification."""
        doc = self._new_account(name, email, password, role, email_verified=True)
        doc["phone"] = phone
        if role == "company" and company_info:
            doc["company_info"] = company_info
        account = self._insert(doc)
        logger.info("Admin created account_id=%s role=%s", account["_id"], role)
        return account

    def get_by_id(self, account_id, include_deleted: bool = False) -> dict:
        oid = to_object_id(account_id)
        account = None
        if oid is not None:
            query = {"_id": oid}
            if not include_deleted:
                query["deleted_at"] = None
            with mongo_errors("get account"):
                account = self.collection.find_one(query)
        if account is None:
            raise NotFound(ACCOUNT_NOT_FOUND)
        return account

    def get_by_email(self, email: str) -> Optional[dict]:
        with mongo_errors("get account by email"):
            return self.collection.find_one({"email": normalize_email(email), "deleted_at": None})

    def authenticate(self, email: str, password: str) -> Optional[dict]:
        """Returns the account when the password matches, else None."""
        account = self.get_by_email(email)
        if account is None or not verify_password(password, account.get("password_hash")):
            return None
        return account

    def record_login(self, account_id) -> None:
        with mongo_errors("record login"):
            self.collection.update_one(
                {"_id": to_object_id(account_id)},
                {"$set": {"last_login_at": self.clock()}},
            )

    def list_accounts(
        self,
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
        search: Optional[str] = None,
        verified: Optional[bool] = None,
    ) -> Tuple[List[dict], int]:
        """
        Paginated listing for the admin screen.
        Admins are hidden unless explicitly filtered for.
        """
        query: dict = {"deleted_at": None, "role": {"$ne": "admin"}}
        if role and role != "all":
            query["role"] = role
        if search:
            pattern = re.escape(search.strip())
            query["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"email": {"$regex": pattern, "$options": "i"}},
            ]
        if verified is not None:
            query["email_verified"] = verified

        skip = (page - 1) * limit
        with mongo_errors("list accounts"):
            total = self.collection.count_documents(query)
            accounts = list(
                self.collection.find(query, {f: 0 for f in PRIVATE_FIELDS})
                .sort("created_at", DESCENDING)
                .skip(skip)
                .limit(limit)
            )
        return accounts, total

    def update(self, account_id, changes: dict) -> dict:
        """Admin update. company_info is merged, only for company accounts."""
        account = self.get_by_id(account_id)
        update = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
        if "role" in update and update["role"] not in ROLES:
            del update["role"]
        if "email" in update:
            update["email"] = normalize_email(update["email"])
            with mongo_errors("check email"):
                clash = self.collection.find_one(
                    {"email": update["email"], "_id": {"$ne": account["_id"]}}, {"_id": 1}
                )
            if clash:
                raise Conflict()
        company_info = changes.get("company_info")
        if company_info is not None and update.get("role", account["role"]) == "company":
            update["company_info"] = {**(account.get("company_info") or {}), **company_info}
        update["updated_at"] = self.clock()

        with mongo_errors("update account"):
            updated = self.collection.find_one_and_update(
                {"_id": account["_id"]},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
        logger.info("Updated account_id=%s fields=%s", account["_id"], sorted(update))
        return updated

    def soft_delete(self, account_id) -> None:
        account = self.get_by_id(account_id)
        now = self.clock()
        with mongo_errors("soft delete account"):
            self.collection.update_one(
                {"_id": account["_id"]},
                {"$set": {"deleted_at": now, "is_active": False, "updated_at": now}},
            )
        logger.info("Soft deleted account_id=%s", account["_id"])

    def hard_delete(self, account_id) -> int:
        """
        Permanently delete the account and cascade to its resume versions.
        Runs under the account's resume lease so no upload can land in between.
        """
        account = self.get_by_id(account_id, include_deleted=True)
        with mongo_errors("delete account"), self.resumes.account_lock(account["_id"], include_deleted=True):
            removed = self.resumes.delete_all_for_account(account["_id"])
            self.collection.delete_one({"_id": account["_id"]})
        logger.info("Permanently deleted account_id=%s resumes=%s", account["_id"], removed)
        return removed

    def platform_stats(self) -> dict:
        """Numbers for the admin dashboard."""
        non_admin = {"role": {"$ne": "admin"}, "deleted_at": None}
        resumes = get_collection(COLLECTIONS["resumes"])
        six_months_ago = self.clock() - timedelta(days=183)

        with mongo_errors("platform stats"):
            total_users = self.collection.count_documents(non_admin)
            total_companies = self.collection.count_documents({"role": "company", "deleted_at": None})
            verified_users = self.collection.count_documents({**non_admin, "email_verified": True})
            total_resumes = resumes.count_documents({})
            active_resumes = resumes.count_documents({"is_active": True})
            users_by_role = list(self.collection.aggregate([
                {"$match": non_admin},
                {"$group": {"_id": "$role", "count": {"$sum": 1}}},
                {"$sort": {"_id": 1}},
            ]))
            recent_users = list(
                self.collection.find(
                    non_admin, {"name": 1, "email": 1, "role": 1, "created_at": 1, "email_verified": 1}
                )
                .sort("created_at", DESCENDING)
                .limit(10)
            )
            new_users_6_months = self.collection.count_documents(
                {**non_admin, "created_at": {"$gte": six_months_ago}}
            )

        def rate(part: int) -> float:
            return round(part / total_users * 100, 1) if total_users else 0.0

        return {
            "total_users": total_users,
            "total_companies": total_companies,
            "total_resumes": total_resumes,
            "verified_users": verified_users,
            "active_resumes": active_resumes,
            "verification_rate": rate(verified_users),
            "resume_rate": rate(active_resumes),
            "new_users_6_months": new_users_6_months,
            "users_by_role": [{"role": r["_id"], "count": r["count"]} for r in users_by_role],
            "recent_users": [public_account(u) for u in recent_users],
        }


def get_account_service() -> AccountService:
    """Get account service instance."""
    return AccountService()
