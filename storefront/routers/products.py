import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from ..database import create_document, get_db, naive_utc, serialize, to_object_id, utcnow
from ..deps import escape_regex
from ..errors import ApiError
from ..schemas import OnlineProductIn, OnlineProductUpdate
from ..services.catalog import prepare_variants
from ..storage import ObjectStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/online/online-products", tags=["online products"])

SORTABLE = {"created_at", "updated_at", "brand", "short_description", "default_selling_price"}


async def product_out(doc: dict, storage: ObjectStorage) -> dict:
    out = serialize(doc)
    for variant in out.get("variants", []):
        variant["image_urls"] = [await storage.presign(key) for key in variant.get("images", [])]
    return out


def _normalise(data: dict) -> dict:
    for key in ("expiry_date", "mfg_date"):
        if data.get(key) is not None:
            data[key] = naive_utc(data[key])
    if "brand" in data and data["brand"] is not None:
        data["brand"] = data["brand"].strip()
    return data


async def _get(db, product_id: str) -> dict:
    product = await db["online_product"].find_one({"_id": to_object_id(product_id, "product id")})
    if not product:
        raise ApiError(404, "Product not found")
    return product


@router.get("")
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    status: Optional[str] = Query(None, pattern="^(draft|active|inactive)$"),
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db=Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    query: dict = {}
    if search and search.strip():
        pattern = {"$regex": escape_regex(search), "$options": "i"}
        query["$or"] = [{"brand": pattern}, {"short_description": pattern}]
    if category:
        query["category"] = category
    if sub_category:
        query["sub_category"] = sub_category
    if status:
        query["product_status"] = status
    if sort_by not in SORTABLE:
        raise ApiError(400, f"Cannot sort by '{sort_by}'")

    total = await db["online_product"].count_documents(query)
    cursor = db["online_product"].find(query).sort(sort_by, 1 if sort_order == "asc" else -1)
    docs = await cursor.skip((page - 1) * limit).limit(limit).to_list(length=limit)
    total_pages = max(1, -(-total // limit))
    return {
        "success": True,
        "data": [await product_out(d, storage) for d in docs],
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_count": total,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


@router.get("/{product_id}")
async def get_product(product_id: str, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)):
    return {"success": True, "data": await product_out(await _get(db, product_id), storage)}


@router.get("/{product_id}/frequently-bought-together")
async def frequently_bought_together(
    product_id: str, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)
):
    product = await _get(db, product_id)
    addons = product.get("frequently_bought_together") or []
    if not addons:
        return {"success": True, "data": []}

    ids = [to_object_id(a["product_id"]) for a in addons]
    active = {
        str(p["_id"]): p
        async for p in db["online_product"].find({"_id": {"$in": ids}, "product_status": "active"})
    }
    out = []
    for addon in addons:
        other = active.get(addon["product_id"])
        if not other or addon["variant_index"] >= len(other.get("variants", [])):
            continue
        variant = dict(other["variants"][addon["variant_index"]])
        variant["image_urls"] = [await storage.presign(k) for k in variant.get("images", [])]
        out.append({
            "product_id": addon["product_id"],
            "variant_index": addon["variant_index"],
            "is_default_selected": addon.get("is_default_selected", False),
            "product": {
                "id": addon["product_id"],
                "short_description": other.get("short_description"),
                "brand": other.get("brand"),
                "category": other.get("category"),
                "sub_category": other.get("sub_category"),
            },
            "variant": variant,
        })
    return {"success": True, "data": out}


@router.post("", status_code=201)
async def create_product(payload: OnlineProductIn, storage: ObjectStorage = Depends(get_storage)):
    data = _normalise(payload.model_dump())
    data["variants"] = prepare_variants(data["variants"])
    product = await create_document("online_product", data)
    logger.info("Created product %s with %d variants", product["_id"], len(data["variants"]))
    return {"success": True, "data": await product_out(product, storage), "message": "Product created successfully"}


@router.put("/{product_id}")
async def update_product(
    product_id: str, payload: OnlineProductUpdate, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)
):
    product = await _get(db, product_id)
    changes = _normalise(payload.model_dump(exclude_unset=True))
    for key in ("category", "sub_category"):
        if key in changes and not (changes[key] or "").strip():
            raise ApiError(400, f"{key} is required")
    if "variants" in changes:
        if not changes["variants"]:
            raise ApiError(400, "At least one variant is required")
        changes["variants"] = prepare_variants(changes["variants"])
    changes["updated_at"] = utcnow()
    await db["online_product"].update_one({"_id": product["_id"]}, {"$set": changes})
    updated = await db["online_product"].find_one({"_id": product["_id"]})
    return {"success": True, "data": await product_out(updated, storage), "message": "Product updated successfully"}


@router.delete("/{product_id}")
async def delete_product(product_id: str, db=Depends(get_db)):
    product = await _get(db, product_id)
    removed = await db["cart"].delete_many({"product_id": str(product["_id"])})
    if removed.deleted_count:
        logger.info("Removed %d cart rows for deleted product %s", removed.deleted_count, product_id)
    await db["online_product"].delete_one({"_id": product["_id"]})
    return {"success": True, "message": "Product deleted successfully", "cart_items_removed": removed.deleted_count}


@router.post("/{product_id}/variants/{index}/images")
async def upload_variant_image(
    product_id: str,
    index: int,
    file: UploadFile = File(...),
    db=Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    product = await _get(db, product_id)
    if index < 0 or index >= len(product.get("variants", [])):
        raise ApiError(404, "Variant not found")
    key = await storage.upload_image(await file.read(), file.filename, file.content_type, "online-products")
    await db["online_product"].update_one(
        {"_id": product["_id"]},
        {"$push": {f"variants.{index}.images": key}, "$set": {"updated_at": utcnow()}},
    )
    return {"success": True, "data": {"key": key, "url": await storage.presign(key)}}
