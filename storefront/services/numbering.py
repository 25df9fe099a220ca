"""Human readable document numbers backed by atomic per-year counters."""
from __future__ import annotations

from typing import Optional

from ..database import get_db, next_sequence, utcnow


def format_po_id(year: int, seq: int) -> str:
    return f"PO-{year}-{seq:03d}"


def format_order_number(year: int, seq: int) -> str:
    return f"ORD-{year}-{seq:06d}"


async def next_po_id(year: Optional[int] = None) -> str:
    year = year or utcnow().year
    return format_po_id(year, await next_sequence(f"purchase_order-{year}"))


async def peek_po_id(year: Optional[int] = None) -> str:
    """The id the next purchase order will most likely get. Does not reserve it."""
    year = year or utcnow().year
    db = await get_db()
    counter = await db["counter"].find_one({"_id": f"purchase_order-{year}"})
    return format_po_id(year, (counter or {}).get("seq", 0) + 1)


async def next_order_number(year: Optional[int] = None) -> str:
    year = year or utcnow().year
    return format_order_number(year, await next_sequence(f"online_order-{year}"))
