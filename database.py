"""
MongoDB access for the blog API.

The module owns the process-wide client. Routes receive the database through
the ``get_db`` dependency so tests can swap in another database object.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

import config
from errors import ValidationFailed

logger = logging.getLogger(__name__)

# Fields that must never leave the server
PRIVATE_USER_FIELDS = ("password", "resetToken", "resetTokenExpiry", "verifyToken", "verifyTokenExpiry")

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        _client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000, tz_aware=True)
    return _client


def get_db() -> Database:
    return get_client()[config.DATABASE_NAME]


def ensure_indexes(db: Database) -> None:
    db["users"].create_index("username", unique=True)
    db["users"].create_index("email", unique=True)
    db["users"].create_index([("followers", DESCENDING)])
    db["blogs"].create_index("slug", unique=True)
    db["blogs"].create_index([("isPublished", ASCENDING), ("likes", DESCENDING)])
    db["blogs"].create_index("author")
    db["comments"].create_index("blog")
    db["followers"].create_index([("user", ASCENDING), ("author", ASCENDING)], unique=True)
    db["followers"].create_index("author")
    db["likes"].create_index([("user", ASCENDING), ("blog", ASCENDING)], unique=True)
    db["likes"].create_index("blog")
    db["resources"].create_index("user")
    logger.info("Database indexes ensured on %s", db.name)


def to_object_id(value: Any, what: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise ValidationFailed(f"Invalid {what}")
    return ObjectId(value)


def serialize(value: Any) -> Any:
    """Convert BSON values (ObjectId, datetime) into JSON friendly ones."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value


def public_user(doc: dict) -> dict:
    return serialize({k: v for k, v in doc.items() if k not in PRIVATE_USER_FIELDS})
