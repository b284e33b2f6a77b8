"""Tests for ResumeVersionStore: versioning, single active version, ownership, lease."""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from app.core.errors import NotFound, StorageFailure
from app.services.resume_version_store import ResumeVersionStore


def _active_count(mongo_db, account_id):
    return mongo_db["resumes"].count_documents({"account_id": account_id, "is_active": True})


def _account(mongo_db, account_id):
    return mongo_db["accounts"].find_one({"_id": account_id})


def test_first_and_second_upload(store, test_user, make_content, mongo_db):
    """Second upload becomes active and points back at the first."""
    v1 = store.create_version(test_user["_id"], make_content(file_name="a.pdf"))
    assert v1["version"] == 1
    assert v1["is_active"] is True
    assert v1["previous_version_id"] is None

    v2 = store.create_version(test_user["_id"], make_content(file_name="b.pdf"))
    assert v2["version"] == 2
    assert v2["is_active"] is True
    assert v2["previous_version_id"] == v1["_id"]

    stored_v1 = mongo_db["resumes"].find_one({"_id": v1["_id"]})
    assert stored_v1["is_active"] is False
    account = _account(mongo_db, test_user["_id"])
    assert account["active_resume_id"] == v2["_id"]
    assert account["has_active_resume"] is True


def test_activate_older_version(store, test_user, make_content, mongo_db):
    """Reactivating version 1 deactivates version 2 and moves the account pointer."""
    v1 = store.create_version(test_user["_id"], make_content())
    v2 = store.create_version(test_user["_id"], make_content())

    activated = store.activate_version(str(v1["_id"]), str(test_user["_id"]))
    assert activated["_id"] == v1["_id"]
    assert mongo_db["resumes"].find_one({"_id": v1["_id"]})["is_active"] is True
    assert mongo_db["resumes"].find_one({"_id": v2["_id"]})["is_active"] is False
    assert _account(mongo_db, test_user["_id"])["active_resume_id"] == v1["_id"]


def test_versions_keep_growing_after_deletes(store, test_user, make_content):
    versions = [store.create_version(test_user["_id"], make_content()) for _ in range(3)]
    store.delete_version(versions[2]["_id"], test_user["_id"])
    store.delete_version(versions[1]["_id"], test_user["_id"])

    v4 = store.create_version(test_user["_id"], make_content())
    assert v4["version"] == 4

    store.delete_version(versions[0]["_id"], test_user["_id"])
    store.delete_version(v4["_id"], test_user["_id"])
    assert store.create_version(test_user["_id"], make_content())["version"] == 5


def test_single_active_after_mixed_operations(store, test_user, make_content, mongo_db):
    oid = test_user["_id"]
    v1 = store.create_version(oid, make_content())
    v2 = store.create_version(oid, make_content())
    v3 = store.create_version(oid, make_content())
    assert _active_count(mongo_db, oid) == 1

    store.activate_version(v1["_id"], oid)
    assert _active_count(mongo_db, oid) == 1
    store.deactivate(v1["_id"], oid)
    assert _active_count(mongo_db, oid) == 0
    store.activate_version(v2["_id"], oid)
    store.delete_version(v3["_id"], oid)
    assert _active_count(mongo_db, oid) == 1
    store.create_version(oid, make_content())
    assert _active_count(mongo_db, oid) == 1


def test_activate_twice_is_idempotent(store, test_user, make_content, mongo_db):
    v1 = store.create_version(test_user["_id"], make_content())
    store.create_version(test_user["_id"], make_content())

    store.activate_version(v1["_id"], test_user["_id"])
    snapshot = list(mongo_db["resumes"].find({}, {"last_modified": 0}).sort("version", 1))
    store.activate_version(v1["_id"], test_user["_id"])

    assert list(mongo_db["resumes"].find({}, {"last_modified": 0}).sort("version", 1)) == snapshot
    assert _active_count(mongo_db, test_user["_id"]) == 1


@pytest.mark.parametrize("operation", ["activate_version", "delete_version", "deactivate"])
def test_cross_account_access_is_not_found(operation, store, test_user, other_user, make_content, mongo_db):
    resume = store.create_version(test_user["_id"], make_content())
    before = mongo_db["resumes"].find_one({"_id": resume["_id"]})

    with pytest.raises(NotFound) as exc:
        getattr(store, operation)(resume["_id"], other_user["_id"])

    assert exc.value.message == "Resume not found"
    assert mongo_db["resumes"].find_one({"_id": resume["_id"]}) == before
    assert _account(mongo_db, other_user["_id"])["has_active_resume"] is False


def test_malformed_resume_id_is_not_found(store, test_user):
    with pytest.raises(NotFound):
        store.get_version("not-an-id", test_user["_id"])


def test_delete_active_leaves_no_active_version(store, test_user, make_content, mongo_db):
    v1 = store.create_version(test_user["_id"], make_content())
    v2 = store.create_version(test_user["_id"], make_content())

    store.delete_version(v2["_id"], test_user["_id"])

    assert store.get_active(test_user["_id"]) is None
    assert mongo_db["resumes"].find_one({"_id": v1["_id"]})["is_active"] is False
    account = _account(mongo_db, test_user["_id"])
    assert account["active_resume_id"] is None
    assert account["has_active_resume"] is False


def test_deactivate_keeps_row_and_clears_pointer(store, test_user, make_content, mongo_db):
    v1 = store.create_version(test_user["_id"], make_content())
    store.deactivate(v1["_id"], test_user["_id"])

    assert mongo_db["resumes"].count_documents({"_id": v1["_id"]}) == 1
    assert store.get_active(test_user["_id"]) is None
    assert _account(mongo_db, test_user["_id"])["has_active_resume"] is False


def test_deactivate_inactive_version_keeps_pointer(store, test_user, make_content, mongo_db):
    v1 = store.create_version(test_user["_id"], make_content())
    v2 = store.create_version(test_user["_id"], make_content())

    store.deactivate(v1["_id"], test_user["_id"])

    assert _account(mongo_db, test_user["_id"])["active_resume_id"] == v2["_id"]


def test_history_is_lazy_sorted_and_restartable(store, test_user, make_content):
    for _ in range(4):
        store.create_version(test_user["_id"], make_content())

    history = store.list_history(test_user["_id"], limit=3)
    first = [doc["version"] for doc in history]
    second = [doc["version"] for doc in history]

    assert first == [4, 3, 2]
    assert second == first


def test_history_excludes_large_payloads(store, test_user, make_content):
    store.create_version(test_user["_id"], make_content())
    doc = next(iter(store.list_history(test_user["_id"])))
    assert "parsed_data" not in doc
    assert "ai_analysis" not in doc
    assert doc["file_name"] == "resume.pdf"


def test_history_of_unknown_account_is_empty(store):
    assert list(store.list_history("nope")) == []


def test_history_limit_is_taken_literally(store, test_user, make_content):
    for _ in range(12):
        store.create_version(test_user["_id"], make_content())

    assert list(store.list_history(test_user["_id"], limit=0)) == []
    assert len(list(store.list_history(test_user["_id"]))) == 10
    assert len(list(store.list_history(test_user["_id"], limit=500))) == 12


def test_get_active_logs_corrupted_state(store, test_user, make_content, mongo_db, caplog):
    store.create_version(test_user["_id"], make_content())
    store.create_version(test_user["_id"], make_content())
    # Simulate a broken invariant written behind the store's back
    mongo_db["resumes"].update_many({"account_id": test_user["_id"]}, {"$set": {"is_active": True}})

    with caplog.at_level(logging.ERROR, logger="app.services.resume_versions"):
        active = store.get_active(test_user["_id"])

    assert active["version"] == 2
    assert "Multiple active resume versions" in caplog.text


def test_create_for_missing_account_fails(store, make_content):
    with pytest.raises(NotFound):
        store.create_version("65f000000000000000000000", make_content())


def test_create_for_soft_deleted_account_fails(store, accounts, test_user, make_content):
    accounts.soft_delete(test_user["_id"])
    with pytest.raises(NotFound):
        store.create_version(test_user["_id"], make_content())


def test_protected_fields_in_content_are_ignored(store, test_user, make_content):
    doc = store.create_version(
        test_user["_id"], make_content(version=99, is_active=False, account_id="someone-else")
    )
    assert doc["version"] == 1
    assert doc["is_active"] is True
    assert doc["account_id"] == test_user["_id"]


def test_busy_lease_times_out(clock, store, test_user, make_content):
    waiting = ResumeVersionStore(clock=clock)
    waiting.lock_wait_seconds = 0.1

    with store.account_lock(test_user["_id"]):
        with pytest.raises(StorageFailure):
            waiting.create_version(test_user["_id"], make_content())

    # Released afterwards
    assert waiting.create_version(test_user["_id"], make_content())["version"] == 1


def test_concurrent_uploads_are_serialized(clock, test_user, make_content, mongo_db):
    def upload(i):
        return ResumeVersionStore(clock=clock).create_version(
            test_user["_id"], make_content(file_name=f"r{i}.pdf")
        )["version"]

    with ThreadPoolExecutor(max_workers=8) as pool:
        versions = list(pool.map(upload, range(8)))

    assert sorted(versions) == list(range(1, 9))
    assert _active_count(mongo_db, test_user["_id"]) == 1
    active = mongo_db["resumes"].find_one({"account_id": test_user["_id"], "is_active": True})
    assert active["version"] == 8
    account = _account(mongo_db, test_user["_id"])
    assert account["active_resume_id"] == active["_id"]
    assert account["resume_version_seq"] == 8
    assert "resume_lock" not in account


def test_expired_lease_is_taken_over(clock, store, test_user, make_content, mongo_db):
    mongo_db["accounts"].update_one(
        {"_id": test_user["_id"]},
        {"$set": {"resume_lock": {"token": "crashed", "expires_at": clock() - timedelta(seconds=1)}}},
    )
    store.lock_wait_seconds = 0.1

    doc = store.create_version(test_user["_id"], make_content())

    assert doc["version"] == 1
    assert "resume_lock" not in _account(mongo_db, test_user["_id"])


def test_update_content_merges_top_level_keys(store, test_user, make_content):
    v1 = store.create_version(test_user["_id"], make_content())

    updated = store.update_content(
        v1["_id"], test_user["_id"], parsed_data={"summary": "Staff engineer"}, notes="tailored"
    )

    assert updated["parsed_data"]["summary"] == "Staff engineer"
    assert updated["parsed_data"]["skills"] == {"technical": ["Python", "MongoDB"]}
    assert updated["notes"] == "tailored"
    assert updated["version"] == 1
    assert updated["is_active"] is True


def test_resync_active_ref_rebuilds_pointer(store, test_user, make_content, mongo_db):
    v1 = store.create_version(test_user["_id"], make_content())
    mongo_db["accounts"].update_one(
        {"_id": test_user["_id"]}, {"$set": {"active_resume_id": None, "has_active_resume": False}}
    )

    store.resync_active_ref(test_user["_id"])

    account = _account(mongo_db, test_user["_id"])
    assert account["active_resume_id"] == v1["_id"]
    assert account["has_active_resume"] is True


def test_delete_all_for_account(store, test_user, other_user, make_content, mongo_db):
    store.create_version(test_user["_id"], make_content())
    store.create_version(test_user["_id"], make_content())
    store.create_version(other_user["_id"], make_content())

    assert store.delete_all_for_account(test_user["_id"]) == 2
    assert store.count_for_account(test_user["_id"]) == 0
    assert store.count_for_account(other_user["_id"]) == 1
