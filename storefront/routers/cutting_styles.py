from fastapi import APIRouter, Depends
from pymongo.errors import DuplicateKeyError

from ..database import create_document, get_db, serialize, to_object_id, utcnow
from ..errors import ApiError
from ..schemas import CuttingStyleIn, CuttingStyleUpdate

router = APIRouter(prefix="/online/cutting-styles", tags=["cutting styles"])

_ORDER = [("sort_order", 1), ("name", 1)]


async def _get(db, style_id: str) -> dict:
    style = await db["cutting_style"].find_one({"_id": to_object_id(style_id, "cutting style id")})
    if not style:
        raise ApiError(404, "Cutting style not found")
    return style


@router.get("")
async def list_cutting_styles(db=Depends(get_db)):
    styles = await db["cutting_style"].find().sort(_ORDER).to_list(length=None)
    return {"success": True, "data": [serialize(s) for s in styles]}


@router.get("/active")
async def list_active_cutting_styles(db=Depends(get_db)):
    styles = await db["cutting_style"].find({"is_active": True}).sort(_ORDER).to_list(length=None)
    return {"success": True, "data": [serialize(s) for s in styles]}


@router.get("/{style_id}")
async def get_cutting_style(style_id: str, db=Depends(get_db)):
    return {"success": True, "data": serialize(await _get(db, style_id))}


@router.post("", status_code=201)
async def create_cutting_style(payload: CuttingStyleIn, db=Depends(get_db)):
    name = payload.name.strip()
    if not name:
        raise ApiError(400, "Cutting style name is required")
    if await db["cutting_style"].find_one({"name": name}):
        raise ApiError(400, "Cutting style with this name already exists")
    try:
        style = await create_document("cutting_style", {**payload.model_dump(), "name": name})
    except DuplicateKeyError:
        raise ApiError(400, "Cutting style with this name already exists")
    return {"success": True, "data": serialize(style), "message": "Cutting style created successfully"}


@router.put("/{style_id}")
async def update_cutting_style(style_id: str, payload: CuttingStyleUpdate, db=Depends(get_db)):
    style = await _get(db, style_id)
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise ApiError(400, "Cutting style name is required")
        if await db["cutting_style"].find_one({"name": changes["name"], "_id": {"$ne": style["_id"]}}):
            raise ApiError(400, "Cutting style with this name already exists")
    changes["updated_at"] = utcnow()
    await db["cutting_style"].update_one({"_id": style["_id"]}, {"$set": changes})
    return {"success": True, "data": serialize(await db["cutting_style"].find_one({"_id": style["_id"]})),
            "message": "Cutting style updated successfully"}


@router.put("/{style_id}/toggle-status")
async def toggle_cutting_style(style_id: str, db=Depends(get_db)):
    style = await _get(db, style_id)
    active = not style.get("is_active", True)
    await db["cutting_style"].update_one({"_id": style["_id"]}, {"$set": {"is_active": active, "updated_at": utcnow()}})
    return {"success": True, "data": {**serialize(style), "is_active": active},
            "message": f"Cutting style {'activated' if active else 'deactivated'} successfully"}


@router.delete("/{style_id}")
async def delete_cutting_style(style_id: str, db=Depends(get_db)):
    style = await _get(db, style_id)
    await db["cutting_style"].delete_one({"_id": style["_id"]})
    return {"success": True, "message": "Cutting style deleted successfully"}
