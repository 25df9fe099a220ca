import logging
from typing import Optional

from fastapi import APIRouter, Depends

from ..database import create_document, get_db, get_documents, serialize, to_object_id, utcnow
from ..deps import escape_regex, reject_nulls
from ..errors import ApiError
from ..schemas import SupplierIn, SupplierUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/purchase/suppliers", tags=["suppliers"])

REQUIRED_FIELDS = ("name", "phone", "email", "shipping_address_same_as_billing", "status")


async def _get(db, supplier_id: str) -> dict:
    supplier = await db["supplier"].find_one({"_id": to_object_id(supplier_id, "supplier id")})
    if not supplier:
        raise ApiError(404, "Supplier not found")
    return supplier


@router.get("")
async def list_suppliers(status: Optional[str] = None, search: Optional[str] = None):
    query: dict = {}
    if status:
        query["status"] = status
    if search:
        pattern = {"$regex": escape_regex(search), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"contact_person_name": pattern}, {"email": pattern}]
    suppliers = await get_documents("supplier", query, limit=0, sort=[("created_at", -1)])
    return {"success": True, "count": len(suppliers), "data": [serialize(s) for s in suppliers]}


@router.get("/{supplier_id}")
async def get_supplier(supplier_id: str, db=Depends(get_db)):
    return {"success": True, "data": serialize(await _get(db, supplier_id))}


@router.post("", status_code=201)
async def create_supplier(payload: SupplierIn):
    supplier = await create_document("supplier", {**payload.model_dump(), "email": payload.email.lower()})
    logger.info("Supplier %s created (%s)", supplier["_id"], supplier["name"])
    return {"success": True, "message": "Supplier created successfully", "data": serialize(supplier)}


@router.put("/{supplier_id}")
async def update_supplier(supplier_id: str, payload: SupplierUpdate, db=Depends(get_db)):
    supplier = await _get(db, supplier_id)
    changes = payload.model_dump(exclude_unset=True)
    reject_nulls(changes, REQUIRED_FIELDS)
    if "email" in changes:
        changes["email"] = changes["email"].lower()
    changes["updated_at"] = utcnow()
    await db["supplier"].update_one({"_id": supplier["_id"]}, {"$set": changes})
    return {
        "success": True,
        "message": "Supplier updated successfully",
        "data": serialize(await db["supplier"].find_one({"_id": supplier["_id"]})),
    }


@router.delete("/{supplier_id}")
async def delete_supplier(supplier_id: str, db=Depends(get_db)):
    supplier = await _get(db, supplier_id)
    await db["supplier"].delete_one({"_id": supplier["_id"]})
    logger.info("Supplier %s deleted", supplier["_id"])
    return {"success": True, "message": "Supplier deleted successfully"}
