from fastapi import APIRouter, Depends
from pymongo.errors import DuplicateKeyError

from ..database import create_document, get_db, to_object_id, utcnow
from ..errors import ApiError
from ..schemas import NameIn

router = APIRouter(prefix="/online/badges", tags=["badges"])

# Always available; "New Arrival", "Bestseller", "Trending" and "Hot Deal" are the homepage ones.
STATIC_BADGES = [
    {"id": "static-new-arrival", "name": "New Arrival", "is_static": True},
    {"id": "static-bestseller", "name": "Bestseller", "is_static": True},
    {"id": "static-trending", "name": "Trending", "is_static": True},
    {"id": "static-hot-deal", "name": "Hot Deal", "is_static": True},
    {"id": "static-limited-stock", "name": "Limited Stock", "is_static": True},
    {"id": "static-sale", "name": "Sale", "is_static": True},
]
RESERVED_NAMES = {b["name"].lower() for b in STATIC_BADGES}


def _badge_out(doc: dict) -> dict:
    return {"id": str(doc["_id"]), "name": doc["name"], "is_static": False}


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ApiError(400, "Badge name is required")
    if name.lower() in RESERVED_NAMES:
        raise ApiError(400, "This badge name is reserved. Please use a different name.")
    return name


def _reject_static(badge_id: str, action: str) -> None:
    if badge_id.startswith("static-"):
        raise ApiError(400, f"Cannot {action} static badges")


@router.get("")
async def list_badges(db=Depends(get_db)):
    custom = [_badge_out(d) for d in await db["badge"].find().sort("name", 1).to_list(length=None)]
    return {"success": True, "data": {"static": STATIC_BADGES, "custom": custom, "all": STATIC_BADGES + custom}}


@router.post("", status_code=201)
async def create_badge(payload: NameIn, db=Depends(get_db)):
    name = _clean_name(payload.name)
    if await db["badge"].find_one({"name": name}):
        raise ApiError(400, "Badge already exists")
    try:
        badge = await create_document("badge", {"name": name})
    except DuplicateKeyError:
        raise ApiError(400, "Badge already exists")
    return {"success": True, "data": _badge_out(badge), "message": "Badge created successfully"}


@router.put("/{badge_id}")
async def update_badge(badge_id: str, payload: NameIn, db=Depends(get_db)):
    _reject_static(badge_id, "update")
    name = _clean_name(payload.name)
    oid = to_object_id(badge_id, "badge id")
    if await db["badge"].find_one({"name": name, "_id": {"$ne": oid}}):
        raise ApiError(400, "Badge name already exists")
    try:
        result = await db["badge"].update_one({"_id": oid}, {"$set": {"name": name, "updated_at": utcnow()}})
    except DuplicateKeyError:
        raise ApiError(400, "Badge name already exists")
    if result.matched_count == 0:
        raise ApiError(404, "Badge not found")
    return {"success": True, "data": {"id": badge_id, "name": name, "is_static": False},
            "message": "Badge updated successfully"}


@router.delete("/{badge_id}")
async def delete_badge(badge_id: str, db=Depends(get_db)):
    _reject_static(badge_id, "delete")
    result = await db["badge"].delete_one({"_id": to_object_id(badge_id, "badge id")})
    if result.deleted_count == 0:
        raise ApiError(404, "Badge not found")
    return {"success": True, "message": "Badge deleted successfully"}
