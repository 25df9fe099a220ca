"""
Push notifications over Firebase Cloud Messaging.

Accounts (``user`` and ``admin`` documents) keep their device tokens in an
``fcm_tokens`` array. Fan-out sends one message per token and pulls any token
FCM reports as dead. Nothing here raises into the caller: push is best effort.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import firebase_admin
from firebase_admin import credentials, exceptions as firebase_exceptions, messaging
from motor.motor_asyncio import AsyncIOMotorDatabase
from starlette.concurrency import run_in_threadpool

from .config import settings
from .database import to_object_id

logger = logging.getLogger(__name__)

_APP_NAME = "storefront"


@dataclass
class PushMessage:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    def string_data(self) -> dict[str, str]:
        # FCM only accepts string values in the data payload
        out = {}
        for key, value in self.data.items():
            if isinstance(value, (dict, list)):
                out[key] = json.dumps(value)
            elif isinstance(value, bool):
                out[key] = "true" if value else "false"
            else:
                out[key] = str(value)
        out.setdefault("notificationType", str(self.data.get("type", "general")))
        return out


@dataclass
class SendReport:
    success: int = 0
    failure: int = 0
    invalid_tokens: list[str] = field(default_factory=list)


def _is_dead_token(exc: Optional[Exception]) -> bool:
    return isinstance(
        exc,
        (messaging.UnregisteredError, messaging.SenderIdMismatchError, firebase_exceptions.InvalidArgumentError),
    )


class PushNotifier:
    def __init__(self, credentials_path: Optional[str] = None):
        self.credentials_path = credentials_path if credentials_path is not None else settings.FIREBASE_CREDENTIALS
        self._app: Optional[firebase_admin.App] = None

    @property
    def enabled(self) -> bool:
        return bool(self.credentials_path)

    def _firebase_app(self) -> firebase_admin.App:
        if self._app is None:
            try:
                self._app = firebase_admin.get_app(_APP_NAME)
            except ValueError:
                cred = credentials.Certificate(self.credentials_path)
                self._app = firebase_admin.initialize_app(cred, name=_APP_NAME)
                logger.info("Firebase app initialised")
        return self._app

    def send_to_tokens(self, tokens: list[str], message: PushMessage) -> SendReport:
        """Send ``message`` to each token. Blocking; run it off the event loop."""
        if not tokens:
            return SendReport()
        data = message.string_data()
        batch = [
            messaging.Message(
                token=token,
                notification=messaging.Notification(title=message.title, body=message.body),
                data=data,
                webpush=messaging.WebpushConfig(
                    headers={"Urgency": data.get("urgency", "high"), "TTL": "86400"},
                    fcm_options=messaging.WebpushFCMOptions(link=data.get("link", "/")),
                ),
            )
            for token in tokens
        ]
        response = messaging.send_each(batch, app=self._firebase_app())
        report = SendReport(success=response.success_count, failure=response.failure_count)
        for token, result in zip(tokens, response.responses):
            if not result.success and _is_dead_token(result.exception):
                report.invalid_tokens.append(token)
        return report

    async def push(self, tokens: list[str], message: PushMessage) -> SendReport:
        if not self.enabled:
            logger.debug("Push disabled, dropping %r", message.title)
            return SendReport()
        return await run_in_threadpool(self.send_to_tokens, tokens, message)

    async def _fan_out(self, db: AsyncIOMotorDatabase, collection: str, accounts: Iterable[dict], message: PushMessage) -> SendReport:
        total = SendReport()
        for account in accounts:
            tokens = list(account.get("fcm_tokens") or [])
            if not tokens:
                continue
            try:
                report = await self.push(tokens, message)
            except Exception:
                logger.exception("Push to %s %s failed", collection, account["_id"])
                total.failure += len(tokens)
                continue
            total.success += report.success
            total.failure += report.failure
            if report.invalid_tokens:
                await db[collection].update_one(
                    {"_id": account["_id"]}, {"$pull": {"fcm_tokens": {"$in": report.invalid_tokens}}}
                )
                logger.info("Removed %d dead tokens from %s %s", len(report.invalid_tokens), collection, account["_id"])
                total.invalid_tokens.extend(report.invalid_tokens)
        return total

    async def to_user(self, db: AsyncIOMotorDatabase, user_id: str, message: PushMessage) -> SendReport:
        user = await db["user"].find_one({"_id": to_object_id(user_id)}, {"fcm_tokens": 1})
        if not user or not user.get("fcm_tokens"):
            logger.info("User %s has no device tokens", user_id)
            return SendReport()
        return await self._fan_out(db, "user", [user], message)

    async def to_admin(self, db: AsyncIOMotorDatabase, admin_id: str, message: PushMessage) -> SendReport:
        admin = await db["admin"].find_one({"_id": to_object_id(admin_id)}, {"fcm_tokens": 1})
        if not admin:
            return SendReport()
        return await self._fan_out(db, "admin", [admin], message)

    async def to_all_admins(self, db: AsyncIOMotorDatabase, message: PushMessage) -> SendReport:
        admins = await db["admin"].find(
            {"is_active": True, "fcm_tokens.0": {"$exists": True}}, {"fcm_tokens": 1}
        ).to_list(length=None)
        if not admins:
            logger.info("No admins with device tokens")
            return SendReport()
        report = await self._fan_out(db, "admin", admins, message)
        logger.info("Sent %r to admins: %d ok, %d failed", message.title, report.success, report.failure)
        return report


_notifier: Optional[PushNotifier] = None


def get_notifier() -> PushNotifier:
    global _notifier
    if _notifier is None:
        _notifier = PushNotifier()
    return _notifier


# -----------------------------
# Templates
# -----------------------------


def low_stock_message(item_name: str, current_stock: int, alert_level: int, location: str = "Online store") -> PushMessage:
    out = current_stock <= 0
    if out:
        body = f"{item_name} is out of stock!\nCurrent: {current_stock} | Alert level: {alert_level}\n{location}\n\nImmediate restocking required!"
    else:
        body = f"{item_name} is running low!\nCurrent: {current_stock} | Alert level: {alert_level}\n{location}"
    return PushMessage(
        title="Out of Stock Alert" if out else "Low Stock Alert",
        body=body,
        data={
            "type": "OUT_OF_STOCK" if out else "LOW_STOCK",
            "itemName": item_name,
            "currentStock": current_stock,
            "alertLevel": alert_level,
            "warehouse": location,
            "link": "/dashboard/inventory-management",
            "urgency": "high",
            "requireInteraction": True,
        },
    )


def order_placed_message(order_number: str, total: float) -> PushMessage:
    return PushMessage(
        title="Order Placed Successfully!",
        body=f"Thank you for your order!\n\nAmount: ₹{total:.2f}\nOrder #{order_number}\n\nWe'll notify you once it's confirmed!",
        data={"type": "ORDER_PLACED", "orderNumber": order_number, "total": total, "link": "/orders", "urgency": "high"},
    )


def new_order_admin_message(order_number: str, customer_name: str, total: float, item_count: int) -> PushMessage:
    return PushMessage(
        title="New Order Received",
        body=f"Order #{order_number}\n\nCustomer: {customer_name}\nAmount: ₹{total:.2f}\nItems: {item_count}",
        data={"type": "NEW_ORDER", "orderNumber": order_number, "total": total, "link": "/dashboard/order-management"},
    )


def order_status_message(order_number: str, status: str, status_message: Optional[str] = None) -> PushMessage:
    return PushMessage(
        title=f"Order {status.capitalize()}",
        body=status_message or f"Your order #{order_number} is now {status}\n\nTrack your order for real-time updates!",
        data={
            "type": "ORDER_UPDATE",
            "orderNumber": order_number,
            "status": status,
            "link": "/orders",
            "urgency": "high" if status == "delivered" else "normal",
            "requireInteraction": status in ("delivered", "cancelled"),
        },
    )


def new_user_message(user_name: str, user_email: str, customer_id: Optional[str]) -> PushMessage:
    link = f"/dashboard/customer-management/view/{customer_id}" if customer_id else "/dashboard/customer-management"
    return PushMessage(
        title="New User Registered",
        body=f"Welcome {user_name}!\n\n{user_email}\n\nA new customer has joined your platform.",
        data={"type": "NEW_USER_REGISTRATION", "userName": user_name, "userEmail": user_email,
              "customerId": customer_id or "", "link": link},
    )


def welcome_message(user_name: str) -> PushMessage:
    return PushMessage(
        title="Welcome to Our Platform!",
        body=f"Hi {user_name}!\n\nThank you for joining us. We're excited to have you here!",
        data={"type": "WELCOME", "userName": user_name, "link": "/"},
    )


def purchase_order_message(po: dict[str, Any]) -> PushMessage:
    completed = po.get("po_status") == "completed"
    supplier = (po.get("supplier_info") or {}).get("supplier_name", "")
    return PushMessage(
        title=f"Purchase Order {'Completed' if completed else 'Draft'}",
        body=f"PO #{po['po_id']}\n\nSupplier: {supplier}\nAmount: ₹{po.get('grand_total', 0):.2f}\nItems: {po.get('total_quantity', 0):g}",
        data={
            "type": "PURCHASE_ORDER_CREATED",
            "poId": po["po_id"],
            "purchaseOrderId": str(po.get("_id", "")),
            "supplierName": supplier,
            "grandTotal": po.get("grand_total", 0),
            "status": po.get("po_status"),
            "link": f"/dashboard/purchase-management/purchase-orders/{po.get('_id', '')}",
            "urgency": "high" if completed else "normal",
        },
    )


def stock_summary_message(out_of_stock: int, low_stock: int, critical: list[str]) -> PushMessage:
    lines = [f"Out of stock: {out_of_stock}", f"Low stock: {low_stock}"]
    if critical:
        lines.append("")
        lines.append("Most critical:")
        lines.extend(f"- {name}" for name in critical)
    return PushMessage(
        title="Daily Stock Summary",
        body="\n".join(lines),
        data={"type": "STOCK_SUMMARY", "outOfStock": out_of_stock, "lowStock": low_stock,
              "link": "/dashboard/inventory-management"},
    )


def expiry_message(item_name: str, days_left: int, expiry_date: str) -> PushMessage:
    critical = days_left <= 3
    when = "today" if days_left <= 0 else f"in {days_left} day{'s' if days_left != 1 else ''}"
    return PushMessage(
        title="Critical: Product Expiring" if critical else "Product Expiring Soon",
        body=f"{item_name} expires {when}\nExpiry date: {expiry_date}",
        data={
            "type": "EXPIRY_ALERT",
            "itemName": item_name,
            "daysLeft": days_left,
            "expiryDate": expiry_date,
            "severity": "critical" if critical else "urgent",
            "link": "/dashboard/inventory-management",
        },
    )


async def deliver(send, *args) -> None:
    """Run a notification coroutine as a background task, logging any failure."""
    try:
        await send(*args)
    except Exception:
        logger.exception("Notification delivery failed")
