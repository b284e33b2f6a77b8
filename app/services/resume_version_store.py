"""
Resume Version Store - resume history per account.

RULES:
1. At most one version per account has is_active = True
2. Version numbers start at 1 and grow by exactly 1 per upload,
   even when older versions were deleted in between
3. A new upload always becomes the active version
4. Deleting or deactivating the active version leaves the account with
   NO active version; reactivating an older one is the caller's decision

The account document carries a denormalized pointer
(active_resume_id / has_active_resume). It is a cache for fast lookups:
the is_active flag on the resume documents is the source of truth, and
resync_active_ref() rebuilds the pointer from it.

CONCURRENCY:
Every mutation for an account runs while holding a short lease stored on
the account document (resume_lock). The lease is taken with a single
conditional find_one_and_update, so two requests for the same account
are serialized even across worker processes. Different accounts never
wait on each other. init_mongo_indexes() additionally creates a partial
unique index on active versions as a server-side backstop.
"""

import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from app.core.config import get_settings
from app.core.errors import NotFound, StorageFailure, ACCOUNT_NOT_FOUND, RESUME_NOT_FOUND
from app.core.logging_config import get_logger
from app.db.mongodb import get_collection, mongo_errors, to_object_id, COLLECTIONS
from app.utils.timeutils import utcnow

logger = get_logger("services.resume_versions")

# Large payloads left out of history listings
SUMMARY_PROJECTION = {"parsed_data": 0, "ai_analysis": 0}

# Only the store may write these
PROTECTED_FIELDS = {"_id", "account_id", "version", "is_active", "previous_version_id"}

LOCK_POLL_SECONDS = 0.05
MAX_HISTORY_LIMIT = 100


class ResumeHistory:
    """
    Lazy view over an account's resume history, newest first.
    Nothing is fetched until iteration; iterating again re-runs the query.
    """

    def __init__(self, collection: Collection, account_id: Optional[ObjectId], limit: int):
        self.collection = collection
        self.account_id = account_id
        self.limit = limit

    def __iter__(self) -> Iterator[dict]:
        # cursor.limit(0) would mean "no limit"
        if self.account_id is None or self.limit == 0:
            return
        with mongo_errors("list resume history"):
            cursor = (
                self.collection.find({"account_id": self.account_id}, SUMMARY_PROJECTION)
                .sort("version", DESCENDING)
                .limit(self.limit)
            )
            yield from cursor


class ResumeVersionStore:
    """
    Owns the resumes collection.
    All writes to is_active / version go through this class.
    """

    def __init__(self, clock: Callable[[], datetime] = None):
        settings = get_settings()
        self.collection: Collection = get_collection(COLLECTIONS["resumes"])
        self.accounts: Collection = get_collection(COLLECTIONS["accounts"])
        self.clock = clock or utcnow
        self.lock_ttl = timedelta(seconds=settings.resume_lock_ttl_seconds)
        self.lock_wait_seconds = settings.resume_lock_wait_seconds
        self.default_limit = settings.resume_history_default_limit

    # ============================================================
    # PER-ACCOUNT LEASE
    # ============================================================

    @contextmanager
    def account_lock(self, account_id: ObjectId, include_deleted: bool = False):
        """
        Hold the resume lease of one (non-deleted) account.

        Raises NotFound if the account does not exist and StorageFailure
        if the lease could not be taken within resume_lock_wait_seconds.
        An expired lease (holder crashed) is taken over.
        include_deleted lets the permanent-delete cascade lock a soft-deleted account.
        """
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.lock_wait_seconds
        account_query = {"_id": account_id}
        if not include_deleted:
            account_query["deleted_at"] = None
        while True:
            now = self.clock()
            acquired = self.accounts.find_one_and_update(
                {
                    **account_query,
                    "$or": [
                        {"resume_lock": None},
                        {"resume_lock.expires_at": {"$lt": now}},
                    ],
                },
                {"$set": {"resume_lock": {"token": token, "expires_at": now + self.lock_ttl}}},
                projection={"_id": 1},
            )
            if acquired is not None:
                break
            if self.accounts.find_one(account_query, {"_id": 1}) is None:
                raise NotFound(ACCOUNT_NOT_FOUND)
            if time.monotonic() >= deadline:
                logger.warning("Timed out waiting for resume lock account_id=%s", account_id)
                raise StorageFailure("Your resumes are being updated. Please try again.")
            time.sleep(LOCK_POLL_SECONDS)

        try:
            yield
        finally:
            self.accounts.update_one(
                {"_id": account_id, "resume_lock.token": token},
                {"$unset": {"resume_lock": ""}},
            )

    # ============================================================
    # HELPERS
    # ============================================================

    @staticmethod
    def _account_oid(account_id) -> ObjectId:
        oid = to_object_id(account_id)
        if oid is None:
            raise NotFound(ACCOUNT_NOT_FOUND)
        return oid

    @staticmethod
    def _resume_oid(resume_id) -> ObjectId:
        oid = to_object_id(resume_id)
        if oid is None:
            raise NotFound(RESUME_NOT_FOUND)
        return oid

    def _find_owned(self, resume_id: ObjectId, account_id: ObjectId, projection: dict = None) -> dict:
        """Ownership check. Someone else's resume looks exactly like a missing one."""
        doc = self.collection.find_one({"_id": resume_id, "account_id": account_id}, projection)
        if doc is None:
            raise NotFound(RESUME_NOT_FOUND)
        return doc

    def _deactivate_others(self, account_id: ObjectId, keep_id: ObjectId) -> int:
        result = self.collection.update_many(
            {"account_id": account_id, "_id": {"$ne": keep_id}, "is_active": True},
            {"$set": {"is_active": False}},
        )
        return result.modified_count

    def _point_account_at(self, account_id: ObjectId, resume_id: ObjectId, extra: dict = None):
        update = {"active_resume_id": resume_id, "has_active_resume": True, "updated_at": self.clock()}
        update.update(extra or {})
        self.accounts.update_one({"_id": account_id}, {"$set": update})

    def _clear_account_ref(self, account_id: ObjectId, resume_id: ObjectId, was_active: bool):
        # A stale pointer at an inactive version is cleared as well
        query = {"_id": account_id}
        if not was_active:
            query["active_resume_id"] = resume_id
        self.accounts.update_one(
            query,
            {"$set": {"active_resume_id": None, "has_active_resume": False, "updated_at": self.clock()}},
        )

    def _rollback_create(self, account_id: ObjectId, new_id: ObjectId, previous_id: Optional[ObjectId]):
        """Undo a half-finished create_version so the previous state stays committed."""
        try:
            self.collection.delete_one({"_id": new_id})
            if previous_id is not None:
                self.collection.update_one({"_id": previous_id}, {"$set": {"is_active": True}})
        except PyMongoError:
            logger.exception(
                "Rollback of resume version failed account_id=%s resume_id=%s", account_id, new_id
            )

    # ============================================================
    # OPERATIONS
    # ============================================================

    def create_version(self, account_id, content: dict) -> dict:
        """
        Store a new resume version and make it the active one.

        Steps (under the account lease):
        1. next version = max(account counter, highest stored version) + 1
        2. previous_version_id = the version active right before this call
        3. insert the new document (inactive), deactivate all others,
           then activate the new one
        4. point the account at the new version and advance its counter

        Args:
            account_id: Owner (ObjectId or its string form)
            content: file metadata + parsed_data / social_links / ai_analysis.
                     Not validated here; callers normalize it first.

        Returns:
            The stored document (is_active True)
        """
        account_oid = self._account_oid(account_id)
        payload = {k: v for k, v in (content or {}).items() if k not in PROTECTED_FIELDS}

        with mongo_errors("create resume version"), self.account_lock(account_oid):
            account = self.accounts.find_one({"_id": account_oid}, {"resume_version_seq": 1})
            latest = self.collection.find_one(
                {"account_id": account_oid}, {"version": 1}, sort=[("version", DESCENDING)]
            )
            previous = self.collection.find_one(
                {"account_id": account_oid, "is_active": True}, {"_id": 1}, sort=[("version", DESCENDING)]
            )
            next_version = max(
                (account or {}).get("resume_version_seq") or 0,
                latest["version"] if latest else 0,
            ) + 1
            previous_id = previous["_id"] if previous else None

            now = self.clock()
            doc = {
                **payload,
                "account_id": account_oid,
                "version": next_version,
                "is_active": False,
                "previous_version_id": previous_id,
                "uploaded_at": payload.get("uploaded_at") or now,
                "created_at": now,
                "last_modified": now,
            }
            new_id = self.collection.insert_one(doc).inserted_id

            try:
                self._deactivate_others(account_oid, new_id)
                self.collection.update_one({"_id": new_id}, {"$set": {"is_active": True}})
                self._point_account_at(account_oid, new_id, {"resume_version_seq": next_version})
            except PyMongoError:
                self._rollback_create(account_oid, new_id, previous_id)
                raise

        doc["_id"] = new_id
        doc["is_active"] = True
        logger.info(
            "Created resume version account_id=%s resume_id=%s version=%s",
            account_oid, new_id, next_version,
        )
        return doc

    def activate_version(self, resume_id, account_id) -> dict:
        """
        Make an existing version the active one.
        Activating the already-active version changes nothing.
        """
        account_oid = self._account_oid(account_id)
        resume_oid = self._resume_oid(resume_id)

        with mongo_errors("activate resume version"), self.account_lock(account_oid):
            target = self._find_owned(resume_oid, account_oid)
            self._deactivate_others(account_oid, resume_oid)
            if not target.get("is_active"):
                self.collection.update_one({"_id": resume_oid}, {"$set": {"is_active": True}})
            self._point_account_at(account_oid, resume_oid)

        target["is_active"] = True
        logger.info(
            "Activated resume version account_id=%s resume_id=%s version=%s",
            account_oid, resume_oid, target.get("version"),
        )
        return target

    def get_active(self, account_id) -> Optional[dict]:
        """Return the active version, or None when the account has none."""
        account_oid = to_object_id(account_id)
        if account_oid is None:
            return None
        with mongo_errors("get active resume"):
            actives = list(
                self.collection.find({"account_id": account_oid, "is_active": True})
                .sort("version", DESCENDING)
                .limit(2)
            )
        if not actives:
            return None
        if len(actives) > 1:
            # Should be impossible; make it loud instead of guessing quietly
            logger.error(
                "Multiple active resume versions account_id=%s resume_ids=%s; using version %s",
                account_oid, [str(doc["_id"]) for doc in actives], actives[0].get("version"),
            )
        return actives[0]

    def list_history(self, account_id, limit: int = None) -> ResumeHistory:
        """Version summaries (no parsed_data / ai_analysis), newest first."""
        if limit is None:
            limit = self.default_limit
        limit = max(0, min(limit, MAX_HISTORY_LIMIT))
        return ResumeHistory(self.collection, to_object_id(account_id), limit)

    def get_version(self, resume_id, account_id) -> dict:
        """Full document of one owned version."""
        account_oid = self._account_oid(account_id)
        resume_oid = self._resume_oid(resume_id)
        with mongo_errors("get resume version"):
            return self._find_owned(resume_oid, account_oid)

    def delete_version(self, resume_id, account_id) -> None:
        """
        Permanently remove a version.
        If it was active the account is left without an active resume.
        """
        account_oid = self._account_oid(account_id)
        resume_oid = self._resume_oid(resume_id)

        with mongo_errors("delete resume version"), self.account_lock(account_oid):
            doc = self._find_owned(resume_oid, account_oid, {"is_active": 1, "version": 1})
            self.collection.delete_one({"_id": resume_oid, "account_id": account_oid})
            self._clear_account_ref(account_oid, resume_oid, bool(doc.get("is_active")))

        logger.info(
            "Deleted resume version account_id=%s resume_id=%s version=%s was_active=%s",
            account_oid, resume_oid, doc.get("version"), bool(doc.get("is_active")),
        )

    def deactivate(self, resume_id, account_id) -> None:
        """Soft remove: the version stays in history but is no longer active."""
        account_oid = self._account_oid(account_id)
        resume_oid = self._resume_oid(resume_id)

        with mongo_errors("deactivate resume version"), self.account_lock(account_oid):
            doc = self._find_owned(resume_oid, account_oid, {"is_active": 1})
            if doc.get("is_active"):
                self.collection.update_one(
                    {"_id": resume_oid}, {"$set": {"is_active": False, "last_modified": self.clock()}}
                )
            self._clear_account_ref(account_oid, resume_oid, bool(doc.get("is_active")))

        logger.info("Deactivated resume version account_id=%s resume_id=%s", account_oid, resume_oid)

    def update_content(
        self,
        resume_id,
        account_id,
        parsed_data: dict = None,
        ai_analysis: dict = None,
        social_links: dict = None,
        notes: str = None,
    ) -> dict:
        """
        Merge partial edits into the nested content objects.
        Top-level keys of each given dict replace the stored ones; version
        and is_active are never touched. Callers normalize the edits first
        (resume_content.normalize_*_edit).
        """
        account_oid = self._account_oid(account_id)
        resume_oid = self._resume_oid(resume_id)

        with mongo_errors("update resume content"), self.account_lock(account_oid):
            doc = self._find_owned(resume_oid, account_oid)
            update = {}
            for field, changes in (
                ("parsed_data", parsed_data),
                ("ai_analysis", ai_analysis),
                ("social_links", social_links),
            ):
                if changes:
                    update[field] = {**(doc.get(field) or {}), **changes}
            if notes is not None:
                update["notes"] = notes
            update["last_modified"] = self.clock()
            self.collection.update_one({"_id": resume_oid}, {"$set": update})

        doc.update(update)
        return doc

    def count_for_account(self, account_id) -> int:
        account_oid = to_object_id(account_id)
        if account_oid is None:
            return 0
        with mongo_errors("count resumes"):
            return self.collection.count_documents({"account_id": account_oid})

    def delete_all_for_account(self, account_id) -> int:
        """Cascade used when an account is permanently deleted."""
        account_oid = self._account_oid(account_id)
        with mongo_errors("delete account resumes"):
            result = self.collection.delete_many({"account_id": account_oid})
        logger.info("Deleted %s resume versions for account_id=%s", result.deleted_count, account_oid)
        return result.deleted_count

    def resync_active_ref(self, account_id) -> Optional[dict]:
        """Rebuild the account's active-resume pointer from the resume documents."""
        account_oid = self._account_oid(account_id)
        with mongo_errors("resync active resume"), self.account_lock(account_oid):
            active = self.get_active(account_oid)
            self.accounts.update_one(
                {"_id": account_oid},
                {"$set": {
                    "active_resume_id": active["_id"] if active else None,
                    "has_active_resume": active is not None,
                    "updated_at": self.clock(),
                }},
            )
        return active


# ============================================================
# CONVENIENCE FUNCTION
# ============================================================

def get_resume_store() -> ResumeVersionStore:
    """Get resume version store instance."""
    return ResumeVersionStore()
