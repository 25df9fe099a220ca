import logging

from fastapi import APIRouter, Depends, Query

from ..config import settings
from ..database import create_document, get_db, serialize, to_object_id, utcnow
from ..deps import get_customer, reject_nulls
from ..errors import ApiError
from ..schemas import AddressIn, AddressUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/online/addresses", tags=["addresses"])

REQUIRED_FIELDS = ("name", "phone", "address_line1", "city", "state", "pincode", "country", "address_type")


async def _owned_address(db, customer, address_id: str) -> dict:
    address = await db["customer_address"].find_one(
        {"_id": to_object_id(address_id, "address id"), "customer_id": customer["_id"]}
    )
    if not address:
        raise ApiError(404, "Address not found")
    return address


async def _make_default(db, customer_id, address_id) -> None:
    await db["customer_address"].update_many(
        {"customer_id": customer_id, "_id": {"$ne": address_id}}, {"$set": {"is_default": False}}
    )
    await db["customer_address"].update_one(
        {"_id": address_id}, {"$set": {"is_default": True, "updated_at": utcnow()}}
    )


@router.get("")
async def list_addresses(user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    rows = await db["customer_address"].find({"customer_id": customer["_id"]}).sort(
        [("is_default", -1), ("created_at", -1)]
    ).to_list(length=None)
    return {"success": True, "data": [serialize(r) for r in rows], "count": len(rows)}


@router.get("/{address_id}")
async def get_address(address_id: str, user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    return {"success": True, "data": serialize(await _owned_address(db, customer, address_id))}


@router.post("", status_code=201)
async def create_address(payload: AddressIn, user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    limit = settings.MAX_ADDRESSES

    # Take an address slot on the customer before inserting.
    reserved = await db["customer"].find_one_and_update(
        {
            "_id": customer["_id"],
            "$or": [{"address_count": {"$lt": limit}}, {"address_count": {"$exists": False}}],
        },
        {"$inc": {"address_count": 1}},
    )
    if not reserved:
        raise ApiError(
            400,
            f"Maximum {limit} addresses allowed. Please edit an existing address instead.",
            code="ADDRESS_LIMIT_REACHED",
        )

    is_first = await db["customer_address"].count_documents({"customer_id": customer["_id"]}) == 0
    address = await create_document("customer_address", {
        **payload.model_dump(),
        "customer_id": customer["_id"],
        "user_id": user_id,
        "is_default": False,
    })
    if is_first or payload.is_default:
        await _make_default(db, customer["_id"], address["_id"])
        address["is_default"] = True
    logger.info("Customer %s added address %s", customer["_id"], address["_id"])
    return {"success": True, "data": serialize(address), "message": "Address added successfully"}


@router.put("/{address_id}")
async def update_address(address_id: str, payload: AddressUpdate, user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    address = await _owned_address(db, customer, address_id)

    changes = payload.model_dump(exclude_unset=True)
    reject_nulls(changes, REQUIRED_FIELDS)
    make_default = changes.pop("is_default", None)
    if make_default is False and address.get("is_default"):
        raise ApiError(400, "Set another address as default instead")

    if changes:
        changes["updated_at"] = utcnow()
        await db["customer_address"].update_one({"_id": address["_id"]}, {"$set": changes})
    if make_default is True:
        await _make_default(db, customer["_id"], address["_id"])

    updated = await db["customer_address"].find_one({"_id": address["_id"]})
    return {"success": True, "data": serialize(updated), "message": "Address updated successfully"}


@router.delete("/{address_id}")
async def delete_address(address_id: str, user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    address = await _owned_address(db, customer, address_id)

    await db["customer_address"].delete_one({"_id": address["_id"]})
    await db["customer"].update_one(
        {"_id": customer["_id"], "address_count": {"$gt": 0}}, {"$inc": {"address_count": -1}}
    )
    if address.get("is_default"):
        oldest = await db["customer_address"].find_one(
            {"customer_id": customer["_id"]}, sort=[("created_at", 1)]
        )
        if oldest:
            await _make_default(db, customer["_id"], oldest["_id"])
    return {"success": True, "message": "Address deleted successfully"}


@router.patch("/{address_id}/default")
async def set_default_address(address_id: str, user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    address = await _owned_address(db, customer, address_id)
    await _make_default(db, customer["_id"], address["_id"])
    address["is_default"] = True
    return {"success": True, "data": serialize(address), "message": "Default address updated"}
