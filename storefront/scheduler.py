"""Cron jobs: stock alerts, daily stock summary and product expiry alerts."""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from motor.motor_asyncio import AsyncIOMotorDatabase

from .config import settings
from .database import get_db, naive_utc, utcnow
from .notifications import (
    PushNotifier,
    expiry_message,
    get_notifier,
    low_stock_message,
    stock_summary_message,
)
from .services.catalog import LOW_STOCK, OUT_OF_STOCK, stock_status

logger = logging.getLogger(__name__)

EXPIRY_WINDOW_DAYS = 7


def stock_alerts(products: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """One entry per variant that is out of stock or at/below its alert level."""
    alerts = []
    for product in products:
        for variant in product.get("variants", []):
            quantity = variant.get("stock_quantity", 0)
            alert_level = variant.get("low_stock_alert")
            if alert_level is None:
                alert_level = settings.DEFAULT_LOW_STOCK_ALERT
            status = stock_status(quantity, alert_level)
            if status in (OUT_OF_STOCK, LOW_STOCK):
                name = product.get("short_description") or product.get("brand") or "Product"
                alerts.append({
                    "name": f"{name} ({variant.get('display_name') or variant.get('name')})",
                    "stock": quantity,
                    "alert_level": alert_level,
                    "status": status,
                })
    return alerts


def days_until(expiry: datetime, now: datetime) -> int:
    return math.ceil((naive_utc(expiry) - now).total_seconds() / 86400)


async def _products(db: AsyncIOMotorDatabase, query: Optional[dict] = None) -> list[dict[str, Any]]:
    return await db["online_product"].find(query or {}).to_list(length=None)


async def check_stock_alerts(db: AsyncIOMotorDatabase, notifier: PushNotifier) -> int:
    alerts = stock_alerts(await _products(db))
    if not alerts:
        logger.info("Stock check: nothing low or out of stock")
        return 0
    sent = 0
    for alert in alerts:
        try:
            await notifier.to_all_admins(db, low_stock_message(alert["name"], alert["stock"], alert["alert_level"]))
            sent += 1
        except Exception:
            logger.exception("Stock alert for %s failed", alert["name"])
    logger.info("Stock check: %d/%d alerts sent", sent, len(alerts))
    return sent


async def send_daily_stock_summary(db: AsyncIOMotorDatabase, notifier: PushNotifier) -> dict[str, Any]:
    alerts = stock_alerts(await _products(db))
    out = [a for a in alerts if a["status"] == OUT_OF_STOCK]
    low = [a for a in alerts if a["status"] == LOW_STOCK]
    critical = sorted(alerts, key=lambda a: a["stock"])[:5]
    summary = {"out_of_stock": len(out), "low_stock": len(low), "critical": [a["name"] for a in critical]}
    if alerts:
        await notifier.to_all_admins(db, stock_summary_message(len(out), len(low), summary["critical"]))
    logger.info("Daily stock summary: %d out, %d low", len(out), len(low))
    return summary


async def check_expiry_alerts(
    db: AsyncIOMotorDatabase, notifier: PushNotifier, now: Optional[datetime] = None
) -> int:
    now = now or utcnow()
    horizon = now + timedelta(days=EXPIRY_WINDOW_DAYS)
    products = await _products(db, {"expiry_date": {"$gte": now, "$lte": horizon}})
    sent = 0
    for product in products:
        days_left = days_until(product["expiry_date"], now)
        name = product.get("short_description") or product.get("brand") or "Product"
        try:
            await notifier.to_all_admins(
                db, expiry_message(name, days_left, product["expiry_date"].strftime("%Y-%m-%d"))
            )
            sent += 1
        except Exception:
            logger.exception("Expiry alert for %s failed", product["_id"])
    logger.info("Expiry check: %d products expiring within %d days", len(products), EXPIRY_WINDOW_DAYS)
    return sent


async def _run(job) -> None:
    try:
        await job(await get_db(), get_notifier())
    except Exception:
        logger.exception("Scheduled job %s failed", job.__name__)


async def run_stock_summary() -> None:
    await _run(send_daily_stock_summary)


async def run_stock_check() -> None:
    await _run(check_stock_alerts)


async def run_expiry_check() -> None:
    await _run(check_expiry_alerts)


def build_scheduler(timezone: Optional[str] = None) -> AsyncIOScheduler:
    tz = timezone or settings.SCHEDULER_TIMEZONE
    scheduler = AsyncIOScheduler(timezone=tz)
    scheduler.add_job(run_stock_summary, CronTrigger(hour="9,17", minute=0, timezone=tz),
                      id="daily_stock_summary", replace_existing=True)
    scheduler.add_job(run_stock_check, CronTrigger(hour="*/6", minute=0, timezone=tz),
                      id="critical_stock_check", replace_existing=True)
    scheduler.add_job(run_expiry_check, CronTrigger(hour=8, minute=0, timezone=tz),
                      id="expiry_check", replace_existing=True)
    return scheduler
