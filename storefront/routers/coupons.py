import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.errors import DuplicateKeyError

from ..database import create_document, get_db, naive_utc, serialize, to_object_id, utcnow
from ..deps import escape_regex, reject_nulls
from ..errors import ApiError
from ..schemas import CouponApplyIn, CouponIn, CouponUpdate, CouponValidateIn
from ..services.coupons import compute_discount, is_exhausted, per_user_limit, redeem_coupon, validate_coupon

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/online/coupons", tags=["coupons"])

REQUIRED_FIELDS = (
    "code", "discount_type", "discount_value", "usage_type",
    "valid_from", "valid_until", "applicable_categories", "is_active",
)


def _public(coupon: dict) -> dict:
    out = serialize(coupon)
    out.pop("usage_by_user", None)
    return out


async def _get(db, coupon_id: str) -> dict:
    coupon = await db["coupon"].find_one({"_id": to_object_id(coupon_id, "coupon id")})
    if not coupon:
        raise ApiError(404, "Coupon not found")
    return coupon


def _live_window(now) -> dict:
    return {"is_active": True, "valid_from": {"$lte": now}, "valid_until": {"$gte": now}}


@router.post("", status_code=201)
async def create_coupon(payload: CouponIn, db=Depends(get_db)):
    data = payload.model_dump()
    data["code"] = data["code"].strip().upper()
    data["valid_from"] = naive_utc(data["valid_from"])
    data["valid_until"] = naive_utc(data["valid_until"])
    if await db["coupon"].find_one({"code": data["code"]}):
        raise ApiError(400, "Coupon code already exists")
    try:
        coupon = await create_document("coupon", {**data, "current_usage_count": 0, "usage_by_user": {}})
    except DuplicateKeyError:
        raise ApiError(400, "Coupon code already exists")
    logger.info("Created coupon %s", data["code"])
    return {"success": True, "data": _public(coupon), "message": "Coupon created successfully"}


@router.get("")
async def list_coupons(is_active: Optional[bool] = None, search: Optional[str] = None, db=Depends(get_db)):
    query: dict = {}
    if is_active is not None:
        query["is_active"] = is_active
    if search:
        pattern = {"$regex": escape_regex(search), "$options": "i"}
        query["$or"] = [{"code": pattern}, {"description": pattern}]
    coupons = await db["coupon"].find(query).sort("created_at", -1).to_list(length=None)
    return {"success": True, "data": [_public(c) for c in coupons], "count": len(coupons)}


@router.get("/available")
async def available_coupons(user_id: str = Query(...), order_value: float = Query(..., gt=0), db=Depends(get_db)):
    """Coupons this user could use on an order of ``order_value``, best first."""
    first_timer = await db["online_order"].count_documents({"user_id": user_id}) == 0
    coupons = await db["coupon"].find(_live_window(utcnow())).sort("created_at", -1).to_list(length=None)

    out = []
    for coupon in coupons:
        if is_exhausted(coupon):
            continue
        if coupon.get("usage_type") == "first-time-user-only" and not first_timer:
            continue
        limit = per_user_limit(coupon)
        if limit is not None:
            used = await db["coupon_usage"].count_documents({"coupon_id": str(coupon["_id"]), "user_id": user_id})
            if used >= limit:
                continue
        if coupon.get("min_order_value") and order_value < coupon["min_order_value"]:
            continue
        out.append({
            "id": str(coupon["_id"]),
            "code": coupon["code"],
            "description": coupon.get("description"),
            "discount_type": coupon["discount_type"],
            "discount_value": coupon["discount_value"],
            "usage_type": coupon.get("usage_type"),
            "min_order_value": coupon.get("min_order_value"),
            "max_discount_amount": coupon.get("max_discount_amount"),
            "estimated_discount": compute_discount(coupon, order_value),
            "is_first_time_user_only": coupon.get("usage_type") == "first-time-user-only",
        })
    out.sort(key=lambda c: c["estimated_discount"], reverse=True)
    return {"success": True, "data": {"is_first_time_user": first_timer, "coupons": out}}


@router.get("/promotional")
async def promotional_coupons(db=Depends(get_db)):
    coupons = await db["coupon"].find(_live_window(utcnow())).sort("discount_value", -1).to_list(length=None)
    fields = ("code", "description", "discount_type", "discount_value", "min_order_value",
              "max_discount_amount", "usage_type")
    top = [{k: c.get(k) for k in fields} for c in coupons if not is_exhausted(c)][:10]
    return {"success": True, "data": top}


@router.post("/validate")
async def validate(payload: CouponValidateIn, db=Depends(get_db)):
    coupon, discount = await validate_coupon(
        db, payload.code, payload.user_id, payload.order_value, payload.categories
    )
    return {
        "success": True,
        "message": "Coupon is valid",
        "data": {
            "coupon_id": str(coupon["_id"]),
            "code": coupon["code"],
            "discount_type": coupon["discount_type"],
            "discount_amount": discount,
            "final_amount": round(payload.order_value - discount, 2),
        },
    }


@router.post("/apply")
async def apply(payload: CouponApplyIn, db=Depends(get_db)):
    usage = await redeem_coupon(
        db,
        payload.coupon_id,
        payload.user_id,
        order_id=payload.order_id,
        discount_amount=payload.discount_amount,
        order_value=payload.order_value,
    )
    return {"success": True, "message": "Coupon applied successfully", "data": serialize(usage)}


@router.get("/{coupon_id}")
async def get_coupon(coupon_id: str, db=Depends(get_db)):
    return {"success": True, "data": _public(await _get(db, coupon_id))}


@router.put("/{coupon_id}")
async def update_coupon(coupon_id: str, payload: CouponUpdate, db=Depends(get_db)):
    coupon = await _get(db, coupon_id)
    changes = payload.model_dump(exclude_unset=True)
    reject_nulls(changes, REQUIRED_FIELDS)
    if "code" in changes:
        changes["code"] = changes["code"].strip().upper()
        if not changes["code"]:
            raise ApiError(400, "Coupon code is required")
        if await db["coupon"].find_one({"code": changes["code"], "_id": {"$ne": coupon["_id"]}}):
            raise ApiError(400, "Coupon code already exists")
    for key in ("valid_from", "valid_until"):
        if changes.get(key) is not None:
            changes[key] = naive_utc(changes[key])

    merged = {**coupon, **changes}
    if naive_utc(merged["valid_until"]) <= naive_utc(merged["valid_from"]):
        raise ApiError(400, "valid_until must be after valid_from")
    if merged["discount_type"] == "percentage" and merged["discount_value"] > 100:
        raise ApiError(400, "percentage discount cannot exceed 100")

    changes["updated_at"] = utcnow()
    try:
        await db["coupon"].update_one({"_id": coupon["_id"]}, {"$set": changes})
    except DuplicateKeyError:
        raise ApiError(400, "Coupon code already exists")
    return {"success": True, "data": _public(await _get(db, coupon_id)), "message": "Coupon updated successfully"}


@router.delete("/{coupon_id}")
async def delete_coupon(coupon_id: str, db=Depends(get_db)):
    coupon = await _get(db, coupon_id)
    await db["coupon"].delete_one({"_id": coupon["_id"]})
    return {"success": True, "message": "Coupon deleted successfully"}


@router.get("/{coupon_id}/stats")
async def coupon_stats(coupon_id: str, db=Depends(get_db)):
    coupon = await _get(db, coupon_id)
    usages = await db["coupon_usage"].find({"coupon_id": str(coupon["_id"])}).sort("used_at", -1).to_list(length=None)
    total_discount = sum(u["discount_amount"] for u in usages)
    total_order_value = sum(u["order_value"] for u in usages)
    return {
        "success": True,
        "data": {
            "coupon": _public(coupon),
            "stats": {
                "total_usage": len(usages),
                "total_discount": round(total_discount, 2),
                "total_order_value": round(total_order_value, 2),
                "average_discount": round(total_discount / len(usages), 2) if usages else 0,
            },
            "recent_usage": [serialize(u) for u in usages[:10]],
        },
    }
