"""Product variant helpers: stock status, SKU checks and stock reservation."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from ..config import settings
from ..errors import ApiError

logger = logging.getLogger(__name__)

OUT_OF_STOCK = "out-of-stock"
LOW_STOCK = "low-stock"
IN_STOCK = "in-stock"

MAX_STOCK_ATTEMPTS = 3


def stock_status(quantity: int, low_stock_alert: Optional[int] = None) -> str:
    alert = settings.DEFAULT_LOW_STOCK_ALERT if low_stock_alert is None else low_stock_alert
    if quantity <= 0:
        return OUT_OF_STOCK
    if quantity <= alert:
        return LOW_STOCK
    return IN_STOCK


def prepare_variants(variants: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Validate a variant list and fill in derived fields."""
    out = []
    seen_skus: set[str] = set()
    for variant in variants:
        variant = dict(variant)
        sku = (variant.get("sku") or "").strip()
        if sku:
            if sku in seen_skus:
                raise ApiError(400, f"Duplicate SKU '{sku}' in variants")
            seen_skus.add(sku)
        if variant.get("stock_quantity", 0) > settings.MAX_VARIANT_STOCK:
            raise ApiError(400, f"Stock quantity for '{variant['name']}' exceeds {settings.MAX_VARIANT_STOCK}")
        if variant.get("low_stock_alert") is None:
            variant["low_stock_alert"] = settings.DEFAULT_LOW_STOCK_ALERT
        if not variant.get("inventory_product_id"):
            variant["inventory_product_id"] = uuid.uuid4().hex
        variant["stock_status"] = stock_status(variant.get("stock_quantity", 0), variant["low_stock_alert"])
        out.append(variant)
    return out


def variant_index(product: Optional[dict[str, Any]], inventory_product_id: str) -> Optional[int]:
    if not product:
        return None
    for index, variant in enumerate(product.get("variants", [])):
        if variant.get("inventory_product_id") == inventory_product_id:
            return index
    return None


async def reserve_stock(
    db: AsyncIOMotorDatabase, product_id, inventory_product_id: str, quantity: int
) -> Optional[tuple[dict[str, Any], int]]:
    """Take ``quantity`` off a variant only if that much is left.

    The variant is found by ``inventory_product_id`` and the write is pinned to
    it, so a concurrent reorder of ``variants`` makes the attempt retry.
    Returns the updated product and the variant's index, or ``None`` when stock
    was insufficient or the variant is gone.
    """
    for _ in range(MAX_STOCK_ATTEMPTS):
        product = await db["online_product"].find_one({"_id": product_id})
        index = variant_index(product, inventory_product_id)
        if index is None or product["variants"][index].get("stock_quantity", 0) < quantity:
            return None
        field = f"variants.{index}.stock_quantity"
        updated = await db["online_product"].find_one_and_update(
            {
                "_id": product_id,
                f"variants.{index}.inventory_product_id": inventory_product_id,
                field: {"$gte": quantity},
            },
            {"$inc": {field: -quantity}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            return updated, index
    return None


async def release_stock(
    db: AsyncIOMotorDatabase, product_id, inventory_product_id: str, quantity: int
) -> Optional[tuple[dict[str, Any], int]]:
    """Put ``quantity`` back on a variant; ``None`` when the variant no longer exists."""
    for _ in range(MAX_STOCK_ATTEMPTS):
        product = await db["online_product"].find_one({"_id": product_id})
        index = variant_index(product, inventory_product_id)
        if index is None:
            logger.warning("Cannot restock %s x%d: variant no longer exists", inventory_product_id, quantity)
            return None
        updated = await db["online_product"].find_one_and_update(
            {"_id": product_id, f"variants.{index}.inventory_product_id": inventory_product_id},
            {"$inc": {f"variants.{index}.stock_quantity": quantity}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            return updated, index
    logger.warning("Restock of %s x%d gave up after %d attempts", inventory_product_id, quantity, MAX_STOCK_ATTEMPTS)
    return None


async def refresh_stock_status(db: AsyncIOMotorDatabase, product: dict[str, Any], index: int) -> str:
    variant = product["variants"][index]
    status = stock_status(variant.get("stock_quantity", 0), variant.get("low_stock_alert"))
    if status != variant.get("stock_status"):
        await db["online_product"].update_one(
            {"_id": product["_id"]}, {"$set": {f"variants.{index}.stock_status": status}}
        )
    return status
