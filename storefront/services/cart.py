"""Cart stock rules.

A cart row is keyed by (customer, inventory product id, cutting style).  The
same variant can sit in several rows with different cutting styles, so every
stock check sums across all of them.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..errors import DomainError, StockExceeded


def style_key(style: Optional[str]) -> Optional[str]:
    return style or None


def same_style(a: Optional[str], b: Optional[str]) -> bool:
    return style_key(a) == style_key(b)


def quantity_elsewhere(rows: Iterable[dict[str, Any]], style: Optional[str]) -> int:
    """Quantity held by rows of this variant under other cutting styles."""
    return sum(r["quantity"] for r in rows if not same_style(r.get("selected_cutting_style"), style))


def check_stock(rows: Iterable[dict[str, Any]], stock: int, style: Optional[str], quantity: int) -> None:
    """Raise unless ``quantity`` under ``style`` fits next to the other rows."""
    if stock <= 0:
        raise DomainError("Item is out of stock")
    if quantity_elsewhere(rows, style) + quantity > stock:
        raise StockExceeded(stock)


def merge_quantity(
    rows: list[dict[str, Any]], stock: int, style: Optional[str], incoming: int
) -> Optional[int]:
    """Quantity to store when a device cart is merged into the server cart.

    Returns ``None`` when nothing should be written.
    """
    if stock <= 0 or incoming <= 0:
        return None
    existing = next((r for r in rows if same_style(r.get("selected_cutting_style"), style)), None)
    if existing is not None:
        room = stock - quantity_elsewhere(rows, style)
        merged = min(max(existing["quantity"], incoming), room)
        return merged if merged > 0 else None
    room = stock - sum(r["quantity"] for r in rows)
    if room <= 0:
        return None
    return min(incoming, room)


def cart_totals(rows: Iterable[dict[str, Any]]) -> dict[str, float]:
    rows = list(rows)
    return {
        "total_items": sum(r["quantity"] for r in rows),
        "total_price": round(sum(r["variant_selling_price"] * r["quantity"] for r in rows), 2),
        "total_savings": round(
            sum((r.get("variant_mrp", 0) - r["variant_selling_price"]) * r["quantity"] for r in rows), 2
        ),
    }


def snapshot(product: dict[str, Any], index: int) -> dict[str, Any]:
    """Denormalised variant fields copied onto a cart row."""
    variant = product["variants"][index]
    images = variant.get("images") or []
    return {
        "product_id": str(product["_id"]),
        "variant_index": index,
        "inventory_product_id": variant["inventory_product_id"],
        "max_stock": variant.get("stock_quantity", 0),
        "short_description": product.get("short_description", ""),
        "brand": product.get("brand", ""),
        "category": product.get("category", ""),
        "variant_name": variant["name"],
        "display_name": variant.get("display_name") or variant["name"],
        "variant_selling_price": variant["selling_price"],
        "variant_mrp": variant.get("mrp", 0),
        "variant_image": images[0] if images else None,
    }


async def find_variant(
    db: AsyncIOMotorDatabase, inventory_product_id: str
) -> Optional[tuple[dict[str, Any], int]]:
    product = await db["online_product"].find_one({"variants.inventory_product_id": inventory_product_id})
    if not product:
        return None
    for index, variant in enumerate(product["variants"]):
        if variant.get("inventory_product_id") == inventory_product_id:
            return product, index
    return None
