import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..database import get_db, serialize, utcnow
from ..deps import get_customer
from ..errors import ApiError, StockExceeded
from ..schemas import CartAddIn, CartSyncIn, CartUpdateIn
from ..services.cart import cart_totals, check_stock, find_variant, merge_quantity, same_style, snapshot, style_key
from ..storage import ObjectStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/online/cart", tags=["cart"])


async def _variant_rows(db, customer_id, inventory_product_id: str) -> list[dict]:
    return await db["cart"].find(
        {"customer_id": customer_id, "inventory_product_id": inventory_product_id}
    ).to_list(length=None)


async def _cart_response(db, customer: dict, storage: ObjectStorage, message: Optional[str] = None) -> dict:
    rows = await db["cart"].find({"customer_id": customer["_id"]}).sort("created_at", -1).to_list(length=None)
    data = []
    for row in rows:
        item = serialize(row)
        item["variant_image"] = await storage.presign(row.get("variant_image"))
        data.append(item)
    out = {"success": True, "data": data, **cart_totals(rows)}
    if message:
        out["message"] = message
    return out


async def _store_quantity(db, customer: dict, product: dict, index: int, style: Optional[str],
                          existing: Optional[dict], quantity: int) -> None:
    """Write one row's quantity, then re-check the variant total.

    Rows for other cutting styles can change concurrently, so the write is
    undone if the variant total ended up above stock.
    """
    fields = {**snapshot(product, index), "quantity": quantity, "updated_at": utcnow()}
    inventory_product_id = fields["inventory_product_id"]
    stock = fields["max_stock"]

    if existing is not None:
        result = await db["cart"].update_one(
            {"_id": existing["_id"], "quantity": existing["quantity"]}, {"$set": fields}
        )
        if result.matched_count == 0:
            raise ApiError(409, "Cart was updated elsewhere, please retry")
        row_id = existing["_id"]
    else:
        inserted = await db["cart"].insert_one({
            **fields,
            "customer_id": customer["_id"],
            "user_id": customer["user_id"],
            "selected_cutting_style": style,
            "created_at": fields["updated_at"],
        })
        row_id = inserted.inserted_id

    total = sum(r["quantity"] for r in await _variant_rows(db, customer["_id"], inventory_product_id))
    if total > stock:
        if existing is not None:
            await db["cart"].update_one({"_id": row_id}, {"$set": {"quantity": existing["quantity"]}})
        else:
            await db["cart"].delete_one({"_id": row_id})
        raise StockExceeded(stock)


async def _locate(db, inventory_product_id: str) -> tuple[dict, int]:
    found = await find_variant(db, inventory_product_id)
    if not found:
        raise ApiError(404, "Product not found")
    return found


@router.get("")
async def get_cart(user_id: str = Query(...), db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)):
    customer = await get_customer(db, user_id)
    return await _cart_response(db, customer, storage)


@router.post("")
async def add_to_cart(payload: CartAddIn, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)):
    customer = await get_customer(db, payload.user_id)
    product, index = await _locate(db, payload.inventory_product_id)
    stock = product["variants"][index].get("stock_quantity", 0)
    style = style_key(payload.selected_cutting_style)

    rows = await _variant_rows(db, customer["_id"], payload.inventory_product_id)
    existing = next((r for r in rows if same_style(r.get("selected_cutting_style"), style)), None)
    quantity = payload.quantity + (existing["quantity"] if existing else 0)
    check_stock(rows, stock, style, quantity)

    await _store_quantity(db, customer, product, index, style, existing, quantity)
    return await _cart_response(db, customer, storage, "Item added to cart")


@router.post("/sync")
async def sync_cart(payload: CartSyncIn, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)):
    """Merge a device cart into the server cart, clamping each line to stock."""
    customer = await get_customer(db, payload.user_id)
    skipped = 0
    for item in payload.items:
        found = await find_variant(db, item.inventory_product_id)
        if not found or item.quantity <= 0:
            skipped += 1
            continue
        product, index = found
        stock = product["variants"][index].get("stock_quantity", 0)
        style = style_key(item.selected_cutting_style)
        rows = await _variant_rows(db, customer["_id"], item.inventory_product_id)
        quantity = merge_quantity(rows, stock, style, item.quantity)
        if quantity is None:
            skipped += 1
            continue
        existing = next((r for r in rows if same_style(r.get("selected_cutting_style"), style)), None)
        try:
            await _store_quantity(db, customer, product, index, style, existing, quantity)
        except (StockExceeded, ApiError) as e:
            logger.info("Skipped %s during cart sync: %s", item.inventory_product_id, e)
            skipped += 1
    if skipped:
        logger.info("Cart sync for %s skipped %d item(s)", payload.user_id, skipped)
    return await _cart_response(db, customer, storage, "Cart synced successfully")


@router.put("/{inventory_product_id}")
async def update_cart_item(
    inventory_product_id: str, payload: CartUpdateIn, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)
):
    customer = await get_customer(db, payload.user_id)
    style = style_key(payload.selected_cutting_style)
    rows = await _variant_rows(db, customer["_id"], inventory_product_id)
    existing = next((r for r in rows if same_style(r.get("selected_cutting_style"), style)), None)
    if existing is None:
        raise ApiError(404, "Cart item not found")

    if payload.quantity == 0:
        await db["cart"].delete_one({"_id": existing["_id"]})
        return await _cart_response(db, customer, storage, "Item removed from cart")

    product, index = await _locate(db, inventory_product_id)
    stock = product["variants"][index].get("stock_quantity", 0)
    check_stock(rows, stock, style, payload.quantity)
    await _store_quantity(db, customer, product, index, style, existing, payload.quantity)
    return await _cart_response(db, customer, storage, "Cart updated")


@router.delete("/{inventory_product_id}")
async def remove_from_cart(
    inventory_product_id: str,
    user_id: str = Query(...),
    selected_cutting_style: Optional[str] = None,
    db=Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    customer = await get_customer(db, user_id)
    query = {"customer_id": customer["_id"], "inventory_product_id": inventory_product_id}
    if selected_cutting_style is not None:
        query["selected_cutting_style"] = style_key(selected_cutting_style)
    result = await db["cart"].delete_many(query)
    if result.deleted_count == 0:
        raise ApiError(404, "Cart item not found")
    return await _cart_response(db, customer, storage, "Item removed from cart")


@router.delete("")
async def clear_cart(user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    result = await db["cart"].delete_many({"customer_id": customer["_id"]})
    return {"success": True, "message": "Cart cleared", "removed": result.deleted_count}
