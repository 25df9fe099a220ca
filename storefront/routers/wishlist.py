from fastapi import APIRouter, Depends, Query

from ..database import get_db, utcnow
from ..deps import get_customer
from ..errors import ApiError
from ..schemas import WishlistAddIn

router = APIRouter(prefix="/online/wishlist", tags=["wishlist"])


def _item_out(doc: dict) -> dict:
    return {
        "wishlist_item_id": str(doc["_id"]),
        "product_id": doc["product_id"],
        "added_at": doc.get("added_at"),
        **(doc.get("product_data") or {}),
    }


@router.get("")
async def get_wishlist(user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    items = await db["wishlist_item"].find({"customer_id": customer["_id"]}).sort("added_at", -1).to_list(length=None)
    return {"success": True, "data": [_item_out(i) for i in items], "count": len(items)}


@router.post("", status_code=201)
async def add_to_wishlist(payload: WishlistAddIn, db=Depends(get_db)):
    customer = await get_customer(db, payload.user_id)
    key = {"customer_id": customer["_id"], "product_id": payload.product_id}
    # Upsert keyed on (customer, product): at most one row per product.
    result = await db["wishlist_item"].update_one(
        key,
        {"$setOnInsert": {**key, "product_data": payload.product_data, "added_at": utcnow()}},
        upsert=True,
    )
    item = await db["wishlist_item"].find_one(key)
    if result.upserted_id is None:
        raise ApiError(409, "Product already in wishlist", data=_item_out(item))
    return {"success": True, "message": "Product added to wishlist", "data": _item_out(item)}


@router.delete("/{product_id}")
async def remove_from_wishlist(product_id: str, user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    result = await db["wishlist_item"].delete_one({"customer_id": customer["_id"], "product_id": product_id})
    if result.deleted_count == 0:
        raise ApiError(404, "Product not found in wishlist")
    return {"success": True, "message": "Product removed from wishlist"}


@router.delete("")
async def clear_wishlist(user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    result = await db["wishlist_item"].delete_many({"customer_id": customer["_id"]})
    return {"success": True, "message": "Wishlist cleared", "removed": result.deleted_count}


@router.get("/check/{product_id}")
async def check_wishlist(product_id: str, user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    item = await db["wishlist_item"].find_one({"customer_id": customer["_id"], "product_id": product_id})
    return {
        "success": True,
        "data": {"in_wishlist": item is not None, "wishlist_item_id": str(item["_id"]) if item else None},
    }
