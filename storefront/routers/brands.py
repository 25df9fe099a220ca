from fastapi import APIRouter, Depends
from pymongo.errors import DuplicateKeyError

from ..database import create_document, get_db, serialize, to_object_id, utcnow
from ..errors import ApiError
from ..schemas import NameIn

router = APIRouter(prefix="/online/brands", tags=["brands"])


def _required(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ApiError(400, "Brand name is required")
    return name


@router.get("")
async def list_brands(db=Depends(get_db)):
    brands = await db["brand"].find().sort("name", 1).to_list(length=None)
    return {"success": True, "data": [serialize(b) for b in brands]}


@router.post("", status_code=201)
async def create_brand(payload: NameIn, db=Depends(get_db)):
    name = _required(payload.name)
    if await db["brand"].find_one({"name": name}):
        raise ApiError(400, "Brand already exists")
    try:
        brand = await create_document("brand", {"name": name})
    except DuplicateKeyError:
        raise ApiError(400, "Brand already exists")
    return {"success": True, "data": serialize(brand), "message": "Brand created successfully"}


@router.put("/{brand_id}")
async def update_brand(brand_id: str, payload: NameIn, db=Depends(get_db)):
    name = _required(payload.name)
    oid = to_object_id(brand_id, "brand id")
    if await db["brand"].find_one({"name": name, "_id": {"$ne": oid}}):
        raise ApiError(400, "Brand name already exists")
    try:
        result = await db["brand"].update_one({"_id": oid}, {"$set": {"name": name, "updated_at": utcnow()}})
    except DuplicateKeyError:
        raise ApiError(400, "Brand name already exists")
    if result.matched_count == 0:
        raise ApiError(404, "Brand not found")
    return {"success": True, "data": serialize(await db["brand"].find_one({"_id": oid})),
            "message": "Brand updated successfully"}


@router.delete("/{brand_id}")
async def delete_brand(brand_id: str, db=Depends(get_db)):
    brand = await db["brand"].find_one({"_id": to_object_id(brand_id, "brand id")})
    if not brand:
        raise ApiError(404, "Brand not found")
    in_use = await db["online_product"].count_documents({"brand": brand["name"]})
    if in_use:
        raise ApiError(400, f"Cannot delete brand. It is used in {in_use} product(s)")
    await db["brand"].delete_one({"_id": brand["_id"]})
    return {"success": True, "message": "Brand deleted successfully"}
