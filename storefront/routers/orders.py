"""Order placement, the customer's order history and admin order handling."""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from ..database import get_db, serialize, to_object_id, utcnow
from ..deps import get_customer, pagination
from ..errors import ApiError
from ..notifications import (
    PushNotifier,
    deliver,
    get_notifier,
    low_stock_message,
    new_order_admin_message,
    order_placed_message,
    order_status_message,
)
from ..schemas import OrderItem, OrderStatusIn, PlaceOrderIn
from ..services.catalog import IN_STOCK, refresh_stock_status, release_stock, reserve_stock, variant_index
from ..services.coupons import redeem_coupon, validate_coupon
from ..services.numbering import next_order_number
from ..storage import ObjectStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/online/orders", tags=["orders"])
my_orders_router = APIRouter(prefix="/online/my-orders", tags=["orders"])
admin_router = APIRouter(prefix="/online/admin/orders", tags=["orders"])

TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"packing", "cancelled"},
    "packing": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, set())


async def order_out(order: dict, storage: ObjectStorage) -> dict:
    out = serialize(order)
    for item in out.get("items", []):
        item["product_image"] = await storage.presign(item.get("product_image"))
    return out


def cod_unavailable(products: list[dict]) -> list[str]:
    """Names of the products that cannot be paid for on delivery."""
    return [
        p.get("short_description") or p.get("brand") or str(p["_id"])
        for p in products
        if not p.get("is_cod_available", True)
    ]


def shipping_for(products: list[dict]) -> float:
    charges = [p.get("shipping_charge", 0) for p in products if not p.get("free_shipping")]
    return float(max(charges)) if charges else 0.0


async def _build_lines(db, rows: list[dict]) -> tuple[list[dict], list[dict]]:
    lines, products = [], {}
    for row in rows:
        product = products.get(row["product_id"])
        if product is None:
            product = await db["online_product"].find_one({"_id": to_object_id(row["product_id"])})
            if not product:
                raise ApiError(400, f"'{row.get('display_name') or row['inventory_product_id']}' is no longer available")
            products[row["product_id"]] = product

        index = variant_index(product, row["inventory_product_id"])
        if index is None:
            raise ApiError(400, f"'{row.get('display_name')}' is no longer available")
        variant = product["variants"][index]
        price = variant["selling_price"]
        lines.append(OrderItem(
            product_id=row["product_id"],
            variant_index=index,
            inventory_product_id=row["inventory_product_id"],
            product_name=product.get("short_description") or product.get("brand") or "Product",
            variant_name=variant.get("display_name") or variant["name"],
            brand=product.get("brand", ""),
            category=product.get("category", ""),
            product_image=(variant.get("images") or [None])[0],
            selected_cutting_style=row.get("selected_cutting_style"),
            quantity=row["quantity"],
            unit_price=price,
            mrp=variant.get("mrp", 0),
            total_price=round(price * row["quantity"], 2),
        ).model_dump())
    return lines, list(products.values())


async def _release_all(db, lines: list[dict]) -> None:
    for line in lines:
        await release_stock(db, to_object_id(line["product_id"]), line["inventory_product_id"], line["quantity"])


async def _reserve_all(db, lines: list[dict]) -> list[tuple[dict, int]]:
    """Take stock for every line or none; returns the updated products for alerting."""
    taken, updated = [], []
    for line in lines:
        oid = to_object_id(line["product_id"])
        reserved = await reserve_stock(db, oid, line["inventory_product_id"], line["quantity"])
        if reserved is None:
            await _release_all(db, taken)
            current = await db["online_product"].find_one({"_id": oid})
            index = variant_index(current, line["inventory_product_id"])
            left = current["variants"][index].get("stock_quantity", 0) if index is not None else 0
            raise ApiError(400, f"Only {left} items available in stock for {line['product_name']} ({line['variant_name']})")
        taken.append(line)
        updated.append(reserved)
    return updated


@router.post("", status_code=201)
async def place_order(
    payload: PlaceOrderIn,
    background: BackgroundTasks,
    db=Depends(get_db),
    notifier: PushNotifier = Depends(get_notifier),
    storage: ObjectStorage = Depends(get_storage),
):
    customer = await get_customer(db, payload.user_id)
    address = await db["customer_address"].find_one(
        {"_id": to_object_id(payload.address_id, "address id"), "customer_id": customer["_id"]}
    )
    if not address:
        raise ApiError(404, "Address not found")

    rows = await db["cart"].find({"customer_id": customer["_id"]}).to_list(length=None)
    if not rows:
        raise ApiError(400, "Cart is empty")

    lines, products = await _build_lines(db, rows)
    if payload.payment_method == "cod" and cod_unavailable(products):
        raise ApiError(400, "Cash on delivery is not available for one or more items in your cart")

    subtotal = round(sum(line["total_price"] for line in lines), 2)
    coupon, discount = None, 0.0
    if payload.coupon_code:
        categories = sorted({line["category"] for line in lines if line["category"]})
        coupon, discount = await validate_coupon(db, payload.coupon_code, payload.user_id, subtotal, categories)
    shipping = shipping_for(products)
    total = round(subtotal - discount + shipping, 2)

    before = {(str(p["_id"]), i): v.get("stock_status") for p in products for i, v in enumerate(p["variants"])}
    reserved = await _reserve_all(db, lines)

    now = utcnow()
    order = {
        "user_id": payload.user_id,
        "customer_id": customer["_id"],
        "customer_name": customer.get("name", ""),
        "items": lines,
        "shipping_address": {k: v for k, v in address.items() if k not in ("_id", "customer_id")},
        "payment_method": payload.payment_method,
        "payment_status": "pending",
        "subtotal": subtotal,
        "coupon_code": coupon["code"] if coupon else None,
        "coupon_discount": discount,
        "shipping_charge": shipping,
        "total": total,
        "notes": payload.notes,
        "status": "pending",
        "status_history": [{"status": "pending", "at": now, "message": "Order placed"}],
        "created_at": now,
        "updated_at": now,
    }
    # Stock is held from here on: any failure gives it back and drops the order.
    try:
        order["order_number"] = await next_order_number(now.year)
        inserted = await db["online_order"].insert_one(order)
        order["_id"] = inserted.inserted_id
        if coupon:
            await redeem_coupon(db, str(coupon["_id"]), payload.user_id, order_id=str(order["_id"]),
                                discount_amount=discount, order_value=subtotal)
    except Exception:
        logger.warning("Placing order for %s failed, releasing reserved stock", payload.user_id)
        await _release_all(db, lines)
        if "_id" in order:
            await db["online_order"].delete_one({"_id": order["_id"]})
        raise

    await db["cart"].delete_many({"customer_id": customer["_id"]})
    logger.info("Order %s placed by %s for %.2f", order["order_number"], payload.user_id, total)

    background.add_task(deliver, notifier.to_user, db, payload.user_id, order_placed_message(order["order_number"], total))
    background.add_task(
        deliver, notifier.to_all_admins, db,
        new_order_admin_message(order["order_number"], order["customer_name"], total, len(lines)),
    )
    for product, index in reserved:
        status = await refresh_stock_status(db, product, index)
        if status != IN_STOCK and before.get((str(product["_id"]), index)) != status:
            variant = product["variants"][index]
            name = f"{product.get('short_description') or product.get('brand')} ({variant.get('display_name') or variant['name']})"
            background.add_task(
                deliver, notifier.to_all_admins, db,
                low_stock_message(name, variant.get("stock_quantity", 0), variant.get("low_stock_alert", 0)),
            )

    return {"success": True, "message": "Order placed successfully", "data": await order_out(order, storage)}


@router.get("/check-cod-availability")
async def check_cod_availability(user_id: str = Query(...), db=Depends(get_db)):
    customer = await get_customer(db, user_id)
    rows = db["cart"].find({"customer_id": customer["_id"]}, {"product_id": 1})
    product_ids = {row["product_id"] async for row in rows}
    if not product_ids:
        raise ApiError(400, "Cart is empty")
    products = await db["online_product"].find(
        {"_id": {"$in": [to_object_id(pid) for pid in product_ids]}}
    ).to_list(length=None)

    unavailable = cod_unavailable(products)
    if unavailable:
        return {
            "success": True,
            "is_cod_available": False,
            "unavailable_products": unavailable,
            "message": f"COD is not available for: {', '.join(unavailable)}",
        }
    return {"success": True, "is_cod_available": True, "message": "COD is available for all items in cart"}


@my_orders_router.get("")
async def my_orders(
    user_id: str = Query(...),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    db=Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    query: dict = {"user_id": user_id}
    if status and status != "all":
        query["status"] = status
    total = await db["online_order"].count_documents(query)
    orders = await db["online_order"].find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit).to_list(length=limit)
    return {
        "success": True,
        "data": [await order_out(o, storage) for o in orders],
        "pagination": pagination(page, limit, total),
    }


@my_orders_router.get("/{order_number}")
async def my_order(order_number: str, user_id: str = Query(...), db=Depends(get_db),
                   storage: ObjectStorage = Depends(get_storage)):
    order = await db["online_order"].find_one({"order_number": order_number, "user_id": user_id})
    if not order:
        raise ApiError(404, "Order not found")
    return {"success": True, "data": await order_out(order, storage)}


@admin_router.get("")
async def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    db=Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    query: dict = {}
    if status and status != "all":
        query["status"] = status
    total = await db["online_order"].count_documents(query)
    orders = await db["online_order"].find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit).to_list(length=limit)
    return {
        "success": True,
        "data": [await order_out(o, storage) for o in orders],
        "pagination": pagination(page, limit, total),
    }


@admin_router.get("/{order_id}")
async def admin_get_order(order_id: str, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)):
    order = await db["online_order"].find_one({"_id": to_object_id(order_id, "order id")})
    if not order:
        raise ApiError(404, "Order not found")
    return {"success": True, "data": await order_out(order, storage)}


@admin_router.put("/{order_id}/status")
async def admin_update_status(
    order_id: str,
    payload: OrderStatusIn,
    background: BackgroundTasks,
    db=Depends(get_db),
    notifier: PushNotifier = Depends(get_notifier),
    storage: ObjectStorage = Depends(get_storage),
):
    oid = to_object_id(order_id, "order id")
    order = await db["online_order"].find_one({"_id": oid})
    if not order:
        raise ApiError(404, "Order not found")
    current = order["status"]
    if not can_transition(current, payload.status):
        allowed = ", ".join(sorted(TRANSITIONS.get(current, ()))) or "none"
        raise ApiError(400, f"Cannot change status from '{current}' to '{payload.status}'. Allowed: {allowed}")

    now = utcnow()
    # Only applies if the status is still the one validated above.
    result = await db["online_order"].update_one(
        {"_id": oid, "status": current},
        {
            "$set": {"status": payload.status, "updated_at": now},
            "$push": {"status_history": {"status": payload.status, "at": now, "message": payload.message}},
        },
    )
    if result.modified_count == 0:
        raise ApiError(409, "Order status changed concurrently, please reload")

    if payload.status == "cancelled":
        for item in order["items"]:
            restocked = await release_stock(
                db, to_object_id(item["product_id"]), item["inventory_product_id"], item["quantity"]
            )
            if restocked:
                await refresh_stock_status(db, *restocked)
        logger.info("Order %s cancelled, stock restored", order["order_number"])

    background.add_task(
        deliver, notifier.to_user, db, order["user_id"],
        order_status_message(order["order_number"], payload.status, payload.message),
    )
    updated = await db["online_order"].find_one({"_id": oid})
    return {"success": True, "message": f"Order {payload.status}", "data": await order_out(updated, storage)}
