"""
MongoDB access for the storefront.

A single client is built from DATABASE_URL / DATABASE_NAME when both are set.
Route handlers receive the database through the `get_db` dependency so the
test-suite can swap in an in-memory database.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson.objectid import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

import config

logger = logging.getLogger(__name__)

client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL)
    db = client[config.DATABASE_NAME]


def get_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # pymongo hands back naive datetimes that are already UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def query_time(value: datetime) -> datetime:
    """Naive UTC, comparable with what the driver stores."""
    return as_utc(value).replace(tzinfo=None)


def to_object_id(value: Any, entity: str = "Document") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(str(value)):
        raise HTTPException(status_code=404, detail=f"{entity} not found")
    return ObjectId(str(value))


def maybe_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value and ObjectId.is_valid(str(value)):
        return ObjectId(str(value))
    return None


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    return value


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    doc.pop("password_hash", None)
    return {k: serialize_value(v) for k, v in doc.items()}


def create_document(database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    else:
        data = dict(data)
    now = utcnow()
    data.setdefault("created_at", now)
    data["updated_at"] = now
    result = database[collection_name].insert_one(data)
    return str(result.inserted_id)


def paginate(cursor_total: int, page: int, limit: int, returned: int) -> dict:
    skip = (page - 1) * limit
    return {
        "current_page": page,
        "total_pages": (cursor_total + limit - 1) // limit if limit else 0,
        "total": cursor_total,
        "has_next": skip + returned < cursor_total,
        "has_prev": page > 1,
    }


def ensure_indexes(database) -> None:
    database["user"].create_index("email", unique=True)
    database["user"].create_index("browsing_history.product_id")
    database["category"].create_index("slug", unique=True)
    database["category"].create_index("name", unique=True)
    database["category"].create_index([("parent_category", ASCENDING), ("is_active", ASCENDING)])
    database["product"].create_index([("category", ASCENDING), ("is_active", ASCENDING)])
    database["product"].create_index([("category", ASCENDING), ("price", ASCENDING)])
    database["product"].create_index([("is_featured", ASCENDING), ("is_active", ASCENDING)])
    database["product"].create_index("tags")
    database["order"].create_index("order_number", unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["order"].create_index([("status", ASCENDING), ("created_at", DESCENDING)])
    database["userdetails"].create_index("user_id", unique=True)
    database["deliverytracking"].create_index("tracking_number", unique=True)
    database["deliverytracking"].create_index("order_id")
    database["deliverytracking"].create_index("status")
    database["coupon"].create_index("code", unique=True)
    database["coupon"].create_index([("valid_from", ASCENDING), ("valid_until", ASCENDING)])
    database["rewardpoint"].create_index("user_id")
    database["notification"].create_index([("target_audience", ASCENDING), ("is_active", ASCENDING)])
    database["notification"].create_index([("scheduled_at", ASCENDING), ("expires_at", ASCENDING)])
    database["recommendation"].create_index("product_id")
    database["recommendation"].create_index("expires_at", expireAfterSeconds=0)
    logger.info("MongoDB indexes ensured")
