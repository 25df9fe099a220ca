"""Shared lookups used by several routers."""
from __future__ import annotations

import math
import re
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from .errors import ApiError


async def get_customer(db: AsyncIOMotorDatabase, user_id: str) -> dict[str, Any]:
    if not user_id:
        raise ApiError(400, "User ID is required")
    customer = await db["customer"].find_one({"user_id": user_id})
    if not customer:
        raise ApiError(404, "Customer not found. Please ensure user is registered.")
    return customer


def pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "total_pages": math.ceil(total / limit) if limit else 0}


def escape_regex(text: str) -> str:
    return re.escape(text.strip())


def reject_nulls(changes: dict[str, Any], fields: tuple[str, ...]) -> None:
    """Partial updates may clear optional fields but never these ones."""
    cleared = [name for name in fields if name in changes and changes[name] is None]
    if cleared:
        raise ApiError(400, f"{', '.join(cleared)} cannot be null")
