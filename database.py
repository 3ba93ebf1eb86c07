"""
MongoDB access helpers.

The Database handle is created once at startup by `connect` and passed
explicitly to whatever needs it; nothing here holds a global connection.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Settings
from errors import DependencyError, ValidationError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url:
        logger.warning("DATABASE_URL not set; running without a database")
        return None
    client = MongoClient(settings.database_url, tz_aware=True)
    logger.info("Using database %s", settings.database_name)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db.user.create_index("email", unique=True)
    db.review.create_index([("listing_id", ASCENDING), ("buyer_email", ASCENDING)], unique=True)
    db.listing.create_index([("created_at", DESCENDING)])
    db.listing.create_index("category")
    db.order.create_index("buyer_email")


def prepare_indexes(db: Database) -> bool:
    """Create indexes; logs and returns False when the store cannot be reached."""
    try:
        ensure_indexes(db)
    except PyMongoError as e:
        logger.warning("Could not create indexes, will retry on next use: %s", e)
        return False
    return True


def attached_db(request: Request) -> Optional[Database]:
    state = request.app.state
    db = getattr(state, "db", None)
    if db is not None and not getattr(state, "indexes_ready", True):
        state.indexes_ready = prepare_indexes(db)
    return db


def get_db(request: Request) -> Database:
    db = attached_db(request)
    if db is None:
        raise DependencyError("Database not configured")
    return db


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        doc = data.model_dump(mode="json")
    else:
        doc = dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def parse_object_id(value: str, field: str = "id") -> ObjectId:
    if not ObjectId.is_valid(value):
        raise ValidationError([f"{field}: invalid id"], message="Invalid id")
    return ObjectId(value)


def to_public(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    doc.pop("password_hash", None)
    return doc
