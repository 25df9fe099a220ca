from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from .config import settings
from .errors import ApiError

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        _client = AsyncIOMotorClient(settings.DATABASE_URL)
        _db = _client[settings.DATABASE_NAME]
    return _db


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def utcnow() -> datetime:
    # Mongo hands back naive UTC datetimes; keep everything we compare naive too.
    return datetime.utcnow()


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_object_id(value: str, label: str = "id") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ApiError(400, f"Invalid {label}")


def serialize(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Turn a stored document into a JSON friendly dict (``_id`` becomes ``id``)."""
    if not doc:
        return doc
    out: dict[str, Any] = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        else:
            out[key] = _plain(value)
    return out


def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


async def create_document(collection_name: str, data: Any) -> dict[str, Any]:
    db = await get_db()
    if hasattr(data, "model_dump"):
        data = data.model_dump()
    now = utcnow()
    data_with_meta = {**data, "created_at": now, "updated_at": now}
    result = await db[collection_name].insert_one(data_with_meta)
    data_with_meta["_id"] = result.inserted_id
    return data_with_meta


async def get_documents(
    collection_name: str,
    filter_dict: dict[str, Any] | None = None,
    limit: int = 100,
    skip: int = 0,
    sort: list[tuple[str, int]] | None = None,
) -> list[dict[str, Any]]:
    db = await get_db()
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return [d async for d in cursor]


async def next_sequence(name: str) -> int:
    """Atomically bump and return the counter called ``name``."""
    db = await get_db()
    doc = await db["counter"].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])


async def ensure_indexes() -> None:
    db = await get_db()
    await db["coupon"].create_index([("code", ASCENDING)], unique=True)
    await db["brand"].create_index([("name", ASCENDING)], unique=True)
    await db["badge"].create_index([("name", ASCENDING)], unique=True)
    await db["cutting_style"].create_index([("name", ASCENDING)], unique=True)
    await db["purchase_order"].create_index([("po_id", ASCENDING)], unique=True)
    await db["user"].create_index([("email", ASCENDING)], unique=True)
    await db["customer"].create_index([("user_id", ASCENDING)], unique=True)
    await db["cart"].create_index([("customer_id", ASCENDING), ("inventory_product_id", ASCENDING)])
    await db["coupon_usage"].create_index([("coupon_id", ASCENDING), ("user_id", ASCENDING)])
    await db["online_order"].create_index([("order_number", ASCENDING)], unique=True)
    logger.info("Database indexes ensured")
