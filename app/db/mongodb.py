"""
MongoDB Connection Utility

MongoDB stores:
- Accounts (identity, role, email verification state, active resume pointer)
- Resume versions (file metadata, AI-parsed content, AI analysis)

WHY MongoDB for these?
- Schema-flexible: AI outputs vary in structure between parser versions
- Document-oriented: a resume version is one self-contained document
- Atomic single-document updates: enough to serialize per-account state
"""
from contextlib import contextmanager

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from app.core.config import get_settings
from app.core.errors import StorageFailure
from app.core.logging_config import get_logger

logger = get_logger("db.mongodb")

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        _client = MongoClient(get_settings().mongodb_uri)
    return _client


def get_mongo_db() -> Database:
    """Get the application database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[get_settings().mongodb_db]
    return _db


def get_collection(name: str) -> Collection:
    """
    Get a specific collection.
    Collections we'll use:
    - accounts: Registered identities
    - resumes: Resume versions (one document per upload)
    """
    db = get_mongo_db()
    return db[name]


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except Exception as e:
        logger.warning("MongoDB connection failed: %s", e)
        return False


def to_object_id(value) -> ObjectId | None:
    """Parse an id coming from a URL or token. Returns None for malformed ids."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


@contextmanager
def mongo_errors(operation: str):
    """
    Surface driver errors as StorageFailure.
    Nothing here retries; the caller decides whether to try again.
    """
    try:
        yield
    except PyMongoError as e:
        logger.exception("MongoDB operation failed: %s", operation)
        raise StorageFailure() from e


# ============================================================
# HELPER: Convert ObjectId to string for JSON serialization
# ============================================================

def _jsonable(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def serialize_doc(doc: dict, exclude: tuple = ()) -> dict:
    """Convert MongoDB document to JSON-serializable dict."""
    if doc is None:
        return None
    return {k: _jsonable(v) for k, v in doc.items() if k not in exclude}


def serialize_docs(docs, exclude: tuple = ()) -> list:
    """Convert MongoDB documents to JSON-serializable list."""
    return [serialize_doc(doc, exclude) for doc in docs]


# Collection name constants (avoid typos)
COLLECTIONS = {
    "accounts": "accounts",
    "resumes": "resumes",
}


def init_mongo_indexes():
    """
    Create indexes for better query performance.
    Call this once during app startup.
    """
    db = get_mongo_db()
    accounts = db[COLLECTIONS["accounts"]]
    resumes = db[COLLECTIONS["resumes"]]

    accounts.create_index("email", unique=True)
    accounts.create_index("role")
    accounts.create_index([("created_at", DESCENDING)])

    # Version numbers are unique per account
    resumes.create_index([("account_id", ASCENDING), ("version", DESCENDING)], unique=True)
    # At most one active version per account, enforced by the server as well
    resumes.create_index(
        "account_id",
        name="one_active_resume_per_account",
        unique=True,
        partialFilterExpression={"is_active": True},
    )
    resumes.create_index([("created_at", DESCENDING)])
    resumes.create_index([("ai_analysis.overall_score", DESCENDING)])

    logger.info("MongoDB indexes created successfully")
