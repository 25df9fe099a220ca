import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pymongo.errors import DuplicateKeyError

from ..database import get_db, get_documents, naive_utc, serialize, to_object_id, utcnow
from ..errors import ApiError
from ..mailer import Mailer, get_mailer
from ..notifications import PushNotifier, deliver, get_notifier, purchase_order_message
from ..schemas import PurchaseOrderIn
from ..services.numbering import next_po_id, peek_po_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/purchase/purchase-orders", tags=["purchase-orders"])

TRANSITIONS = {"draft": {"draft", "completed"}, "completed": set()}
MAX_ID_ATTEMPTS = 3


def _document(payload: PurchaseOrderIn) -> dict:
    data = payload.model_dump()
    data["po_date"] = naive_utc(data["po_date"])
    data["expected_delivery_date"] = naive_utc(data.get("expected_delivery_date"))
    return data


async def _get(db, po_id: str) -> dict:
    po = await db["purchase_order"].find_one({"_id": to_object_id(po_id, "purchase order id")})
    if not po:
        raise ApiError(404, "Purchase order not found")
    return po


async def _on_completed(db, po: dict, mailer: Mailer) -> bool:
    company = await db["company_settings"].find_one({})
    sent = await mailer.send_purchase_order(po, company)
    if sent:
        logger.info("Purchase order %s emailed to supplier", po["po_id"])
    return sent


@router.get("")
async def list_purchase_orders(
    status: Optional[str] = None,
    supplier_id: Optional[str] = None,
    warehouse_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    query: dict = {}
    if status:
        query["po_status"] = status
    if supplier_id:
        query["supplier_info.supplier_id"] = supplier_id
    if warehouse_id:
        query["warehouse_id"] = warehouse_id
    if start_date or end_date:
        query["po_date"] = {}
        if start_date:
            query["po_date"]["$gte"] = naive_utc(start_date)
        if end_date:
            query["po_date"]["$lte"] = naive_utc(end_date)
    orders = await get_documents("purchase_order", query, limit=0, sort=[("created_at", -1)])
    return {"success": True, "count": len(orders), "data": [serialize(o) for o in orders]}


@router.get("/stats")
async def purchase_order_stats(db=Depends(get_db)):
    collection = db["purchase_order"]
    totals = await collection.find({}, {"grand_total": 1}).to_list(length=None)
    recent = await get_documents("purchase_order", limit=5, sort=[("created_at", -1)])
    return {
        "success": True,
        "data": {
            "total": await collection.count_documents({}),
            "draft": await collection.count_documents({"po_status": "draft"}),
            "completed": await collection.count_documents({"po_status": "completed"}),
            "total_value": round(sum(po.get("grand_total", 0) for po in totals), 2),
            "recent": [
                {
                    "id": str(po["_id"]),
                    "po_id": po["po_id"],
                    "supplier_name": (po.get("supplier_info") or {}).get("supplier_name"),
                    "grand_total": po.get("grand_total", 0),
                    "po_status": po["po_status"],
                    "created_at": po["created_at"],
                }
                for po in recent
            ],
        },
    }


@router.get("/next-number")
async def next_number():
    return {"success": True, "data": {"po_id": await peek_po_id()}}


@router.get("/{po_id}")
async def get_purchase_order(po_id: str, db=Depends(get_db)):
    return {"success": True, "data": serialize(await _get(db, po_id))}


@router.post("", status_code=201)
async def create_purchase_order(
    payload: PurchaseOrderIn,
    background: BackgroundTasks,
    db=Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    notifier: PushNotifier = Depends(get_notifier),
):
    data = _document(payload)
    now = utcnow()
    for _ in range(MAX_ID_ATTEMPTS):
        po = {**data, "po_id": await next_po_id(now.year), "created_at": now, "updated_at": now}
        try:
            result = await db["purchase_order"].insert_one(po)
            break
        except DuplicateKeyError:
            # po_id is unique; a number already in use is skipped.
            logger.warning("Purchase order id %s already taken, drawing another", po["po_id"])
    else:
        raise ApiError(500, "Could not allocate a purchase order number")
    po["_id"] = result.inserted_id
    logger.info("Created purchase order %s (%s)", po["po_id"], po["po_status"])

    if po["po_status"] == "completed":
        sent = await _on_completed(db, po, mailer)
        message = ("Purchase order created and sent to supplier via email" if sent
                   else "Purchase order created and marked as completed")
    else:
        message = "Purchase order saved as draft"
    background.add_task(deliver, notifier.to_all_admins, db, purchase_order_message(po))
    return {"success": True, "message": message, "data": serialize(po)}


@router.put("/{po_id}")
async def update_purchase_order(
    po_id: str,
    payload: PurchaseOrderIn,
    background: BackgroundTasks,
    db=Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    notifier: PushNotifier = Depends(get_notifier),
):
    po = await _get(db, po_id)
    old_status = po["po_status"]
    if old_status == "completed":
        raise ApiError(400, f"Purchase order is {old_status} and cannot be modified")
    if payload.po_status not in TRANSITIONS.get(old_status, set()):
        allowed = ", ".join(sorted(TRANSITIONS.get(old_status, ()))) or "none"
        raise ApiError(400, f'Cannot change status from "{old_status}" to "{payload.po_status}". Valid transitions: {allowed}')

    changes = {**_document(payload), "updated_at": utcnow()}
    result = await db["purchase_order"].update_one({"_id": po["_id"], "po_status": old_status}, {"$set": changes})
    if result.matched_count == 0:
        raise ApiError(409, "Purchase order was modified concurrently, please reload")
    updated = await _get(db, po_id)

    message = "Purchase order updated"
    if old_status == "draft" and updated["po_status"] == "completed":
        sent = await _on_completed(db, updated, mailer)
        message = ("Purchase order completed and sent to supplier via email" if sent
                   else "Purchase order marked as completed")
        background.add_task(deliver, notifier.to_all_admins, db, purchase_order_message(updated))
    return {"success": True, "message": message, "data": serialize(updated)}


@router.delete("/{po_id}")
async def delete_purchase_order(po_id: str):
    raise ApiError(
        403,
        "Purchase orders cannot be deleted. Please cancel the purchase order instead using status update.",
        error="Delete operation not allowed",
    )
