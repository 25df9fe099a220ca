"""Coupon eligibility rules and redemption bookkeeping.

``check_coupon`` and ``compute_discount`` are pure: they look only at an
already fetched coupon document and the counts passed in.  ``validate_coupon``
and ``redeem_coupon`` do the database work around them.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..database import naive_utc, to_object_id, utcnow
from ..errors import ApiError, CouponRejected
from ..schemas import CouponUsage

logger = logging.getLogger(__name__)

MAX_REDEEM_ATTEMPTS = 5


def per_user_limit(coupon: dict[str, Any]) -> Optional[int]:
    if coupon.get("max_usage_per_user"):
        return int(coupon["max_usage_per_user"])
    if coupon.get("usage_type") == "single-use":
        return 1
    return None


def is_exhausted(coupon: dict[str, Any]) -> bool:
    cap = coupon.get("max_usage_count")
    return bool(cap) and coupon.get("current_usage_count", 0) >= cap


def compute_discount(coupon: dict[str, Any], order_value: float) -> float:
    if coupon["discount_type"] == "percentage":
        discount = order_value * coupon["discount_value"] / 100
        cap = coupon.get("max_discount_amount")
        if cap and discount > cap:
            discount = cap
    else:
        discount = coupon["discount_value"]
    discount = min(max(discount, 0.0), order_value)
    return round(discount, 2)


def check_coupon(
    coupon: dict[str, Any],
    *,
    now: datetime,
    order_value: float,
    user_usage_count: int,
    user_order_count: int,
    categories: Optional[Iterable[str]],
) -> float:
    """Run the eligibility rules in order and return the discount.

    Raises ``CouponRejected`` with the first failing rule's message.
    """
    if not coupon.get("is_active", False):
        raise CouponRejected("This coupon is no longer active")
    if now < naive_utc(coupon["valid_from"]):
        raise CouponRejected("This coupon is not yet valid")
    if now > naive_utc(coupon["valid_until"]):
        raise CouponRejected("This coupon has expired")
    if is_exhausted(coupon):
        raise CouponRejected("This coupon has reached its maximum usage limit")

    limit = per_user_limit(coupon)
    if limit is not None and user_usage_count >= limit:
        raise CouponRejected("You have already used this coupon the maximum number of times")

    if coupon.get("usage_type") == "first-time-user-only" and user_order_count > 0:
        raise CouponRejected("This coupon is only valid for first-time users")

    min_value = coupon.get("min_order_value")
    if min_value and order_value < min_value:
        raise CouponRejected(f"Minimum order value of {min_value:g} required to use this coupon")

    applicable = coupon.get("applicable_categories") or []
    if applicable:
        wanted = set(categories or [])
        if not wanted.intersection(applicable):
            raise CouponRejected("This coupon is not applicable to the selected products")

    return compute_discount(coupon, order_value)


async def cart_categories(db: AsyncIOMotorDatabase, user_id: str) -> list[str]:
    customer = await db["customer"].find_one({"user_id": user_id})
    if not customer:
        return []
    rows = db["cart"].find({"customer_id": customer["_id"]}, {"category": 1})
    return sorted({row["category"] async for row in rows if row.get("category")})


async def validate_coupon(
    db: AsyncIOMotorDatabase,
    code: str,
    user_id: str,
    order_value: float,
    categories: Optional[list[str]] = None,
) -> tuple[dict[str, Any], float]:
    coupon = await db["coupon"].find_one({"code": code.strip().upper()})
    if not coupon:
        raise ApiError(404, "Invalid coupon code")

    if coupon.get("applicable_categories") and not categories:
        categories = await cart_categories(db, user_id)
        logger.debug("Coupon %s: categories taken from cart %s", coupon["code"], categories)

    usage_count = await db["coupon_usage"].count_documents(
        {"coupon_id": str(coupon["_id"]), "user_id": user_id}
    )
    order_count = await db["online_order"].count_documents({"user_id": user_id})

    discount = check_coupon(
        coupon,
        now=utcnow(),
        order_value=order_value,
        user_usage_count=usage_count,
        user_order_count=order_count,
        categories=categories,
    )
    return coupon, discount


async def redeem_coupon(
    db: AsyncIOMotorDatabase,
    coupon_id: str,
    user_id: str,
    *,
    order_id: Optional[str],
    discount_amount: float,
    order_value: float,
) -> dict[str, Any]:
    """Record one redemption, keeping the global and per-user caps intact.

    The counter bump is a compare-and-set on the values just read, so two
    concurrent redemptions cannot both take the last slot.
    """
    oid = to_object_id(coupon_id, "coupon id")
    user_key = f"usage_by_user.{user_id}"

    for _ in range(MAX_REDEEM_ATTEMPTS):
        coupon = await db["coupon"].find_one({"_id": oid})
        if not coupon:
            raise ApiError(404, "Coupon not found")
        if is_exhausted(coupon):
            raise CouponRejected("This coupon has reached its maximum usage limit")

        used = coupon.get("current_usage_count", 0)
        used_by_user = (coupon.get("usage_by_user") or {}).get(user_id, 0)
        limit = per_user_limit(coupon)
        if limit is not None and used_by_user >= limit:
            raise CouponRejected("You have already used this coupon the maximum number of times")

        expected: dict[str, Any] = {"_id": oid, "current_usage_count": used}
        expected[user_key] = used_by_user if used_by_user else {"$exists": False}
        result = await db["coupon"].update_one(
            expected,
            {"$inc": {"current_usage_count": 1, user_key: 1}, "$set": {"updated_at": utcnow()}},
        )
        if result.modified_count == 1:
            usage = CouponUsage(
                coupon_id=str(oid),
                coupon_code=coupon["code"],
                user_id=user_id,
                order_id=order_id,
                discount_amount=round(float(discount_amount), 2),
                order_value=round(float(order_value), 2),
                used_at=utcnow(),
            ).model_dump()
            inserted = await db["coupon_usage"].insert_one(usage)
            usage["_id"] = inserted.inserted_id
            return usage
        logger.info("Coupon %s changed during redemption, retrying", coupon["code"])

    raise ApiError(409, "Coupon is busy, please try again")

