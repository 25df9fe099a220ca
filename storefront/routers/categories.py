import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from ..database import create_document, get_db, to_object_id, utcnow
from ..deps import escape_regex
from ..errors import ApiError
from ..schemas import CategoryOnlyIn, CategoryPairIn, CategoryPairUpdate, SeoRequest, ToggleStatusIn
from ..seo import PLACEHOLDER_COMPANIES, SeoGenerator, detect_company_name, get_seo_generator
from ..storage import ObjectStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/online/category-subcategory", tags=["categories"])

_object_id = re.compile(r"^[0-9a-fA-F]{24}$")


def split_id(composite: str) -> tuple[str, Optional[str]]:
    parts = composite.split("-")
    if len(parts) > 2 or not all(_object_id.match(p) for p in parts):
        raise ApiError(400, "Invalid category ID format")
    return parts[0], parts[1] if len(parts) == 2 else None


def _name_filter(name: str) -> dict:
    return {"$regex": f"^{escape_regex(name)}$", "$options": "i"}


async def _pair_out(category: dict, sub: Optional[dict], storage: ObjectStorage) -> dict:
    sub = sub or {}
    return {
        "id": f"{category['_id']}-{sub['_id']}" if sub else str(category["_id"]),
        "category_id": str(category["_id"]),
        "subcategory_id": str(sub["_id"]) if sub else None,
        "category_name": category["name"],
        "subcategory_name": sub.get("name", ""),
        "category_image": await storage.presign(category.get("image")),
        "subcategory_image": await storage.presign(sub.get("image")),
        "category_meta_title": category.get("meta_title"),
        "category_meta_description": category.get("meta_description"),
        "category_meta_keywords": category.get("meta_keywords"),
        "subcategory_meta_title": sub.get("meta_title", ""),
        "subcategory_meta_description": sub.get("meta_description", ""),
        "subcategory_meta_keywords": sub.get("meta_keywords", ""),
        "category_is_active": category.get("is_active", True),
        "subcategory_is_active": sub.get("is_active", False),
        "created_at": category.get("created_at"),
        "updated_at": category.get("updated_at"),
    }


async def _load(db, composite: str) -> tuple[dict, Optional[dict]]:
    category_id, sub_id = split_id(composite)
    category = await db["category"].find_one({"_id": to_object_id(category_id)})
    if not category:
        raise ApiError(404, "Category not found")
    sub = None
    if sub_id:
        sub = await db["subcategory"].find_one({"_id": to_object_id(sub_id), "category_id": category["_id"]})
        if not sub:
            raise ApiError(404, "Subcategory not found")
    return category, sub


def _status_filter(status: str) -> Optional[bool]:
    if status == "all":
        return None
    return status == "active"


@router.get("")
async def list_pairs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    category_status: str = Query("all", pattern="^(all|active|inactive)$"),
    subcategory_status: str = Query("all", pattern="^(all|active|inactive)$"),
    db=Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    category_query: dict = {}
    wanted = _status_filter(category_status)
    if wanted is not None:
        category_query["is_active"] = wanted
    sub_query: dict = {}
    wanted = _status_filter(subcategory_status)
    if wanted is not None:
        sub_query["is_active"] = wanted

    needle = search.strip().lower()
    pairs = []
    async for category in db["category"].find(category_query).sort("updated_at", -1):
        subs = db["subcategory"].find({**sub_query, "category_id": category["_id"]}).sort("updated_at", -1)
        async for sub in subs:
            if needle and needle not in category["name"].lower() and needle not in sub["name"].lower():
                continue
            pairs.append((category, sub))

    total = len(pairs)
    total_pages = max(1, -(-total // limit))
    window = pairs[(page - 1) * limit:page * limit]
    return {
        "success": True,
        "data": [await _pair_out(c, s, storage) for c, s in window],
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_count": total,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


@router.get("/names")
async def category_names(db=Depends(get_db)):
    names = await db["category"].distinct("name", {"is_active": True})
    return {"success": True, "data": sorted(names)}


@router.get("/subcategories/{category_name}")
async def subcategories_of(category_name: str, db=Depends(get_db)):
    category = await db["category"].find_one({"name": _name_filter(category_name)})
    if not category:
        raise ApiError(404, "Category not found")
    subs = await db["subcategory"].find({"category_id": category["_id"], "is_active": True}).sort("name", 1).to_list(length=None)
    return {"success": True, "data": [{"id": str(s["_id"]), "name": s["name"]} for s in subs]}


@router.post("/generate-seo")
async def generate_seo(
    payload: SeoRequest,
    db=Depends(get_db),
    generator: SeoGenerator = Depends(get_seo_generator),
):
    company = (payload.company_name or "").strip()
    if company in PLACEHOLDER_COMPANIES:
        company = await detect_company_name(db)

    category_seo = await generator.generate(payload.category_name, None, company)
    sub_seo = None
    if payload.subcategory_name:
        sub_seo = await generator.generate(payload.category_name, payload.subcategory_name, company)
    return {
        "success": True,
        "message": "SEO content generated successfully",
        "data": {"category": category_seo, "subcategory": sub_seo, "detected_company_name": company},
    }


@router.get("/{item_id}")
async def get_pair(item_id: str, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)):
    category, sub = await _load(db, item_id)
    return {"success": True, "data": await _pair_out(category, sub, storage)}


@router.post("/category-only", status_code=201)
async def create_category_only(payload: CategoryOnlyIn, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)):
    name = payload.name.strip()
    if await db["category"].find_one({"name": _name_filter(name)}):
        raise ApiError(400, "Category already exists")
    category = await create_document("category", {**payload.model_dump(), "name": name, "image": None})
    return {"success": True, "data": await _pair_out(category, None, storage), "message": "Category created successfully"}


@router.post("", status_code=201)
async def create_pair(payload: CategoryPairIn, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)):
    category_name = payload.category_name.strip()
    sub_name = payload.subcategory_name.strip()

    category = await db["category"].find_one({"name": _name_filter(category_name)})
    if category is None:
        category = await create_document("category", {
            "name": category_name,
            "image": None,
            "meta_title": payload.category_meta_title,
            "meta_description": payload.category_meta_description,
            "meta_keywords": payload.category_meta_keywords,
            "is_active": payload.category_is_active,
        })
    elif await db["subcategory"].find_one({"category_id": category["_id"], "name": _name_filter(sub_name)}):
        raise ApiError(400, f"Subcategory '{sub_name}' already exists in '{category['name']}'")

    sub = await create_document("subcategory", {
        "category_id": category["_id"],
        "name": sub_name,
        "image": None,
        "meta_title": payload.subcategory_meta_title,
        "meta_description": payload.subcategory_meta_description,
        "meta_keywords": payload.subcategory_meta_keywords,
        "is_active": payload.subcategory_is_active,
    })
    logger.info("Created subcategory %s under %s", sub_name, category["name"])
    return {"success": True, "data": await _pair_out(category, sub, storage), "message": "Category created successfully"}


@router.put("/{item_id}")
async def update_pair(
    item_id: str, payload: CategoryPairUpdate, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)
):
    category, sub = await _load(db, item_id)
    changes = payload.model_dump(exclude_unset=True)
    now = utcnow()

    cat_set = {k[len("category_"):]: v for k, v in changes.items() if k.startswith("category_")}
    if "name" in cat_set:
        cat_set["name"] = (cat_set["name"] or "").strip()
        clash = await db["category"].find_one({"name": _name_filter(cat_set["name"]), "_id": {"$ne": category["_id"]}})
        if not cat_set["name"] or clash:
            raise ApiError(400, "Category name is empty or already exists")
    if cat_set:
        await db["category"].update_one({"_id": category["_id"]}, {"$set": {**cat_set, "updated_at": now}})

    sub_set = {k[len("subcategory_"):]: v for k, v in changes.items() if k.startswith("subcategory_")}
    if sub_set and sub is None:
        raise ApiError(400, "Subcategory ID required to update subcategory fields")
    if sub is not None and sub_set:
        if "name" in sub_set:
            sub_set["name"] = (sub_set["name"] or "").strip()
            clash = await db["subcategory"].find_one({
                "category_id": category["_id"], "name": _name_filter(sub_set["name"]), "_id": {"$ne": sub["_id"]},
            })
            if not sub_set["name"] or clash:
                raise ApiError(400, "Subcategory name is empty or already exists in this category")
        await db["subcategory"].update_one({"_id": sub["_id"]}, {"$set": {**sub_set, "updated_at": now}})

    category, sub = await _load(db, item_id)
    return {"success": True, "data": await _pair_out(category, sub, storage), "message": "Category updated successfully"}


@router.delete("/{item_id}")
async def delete_pair(item_id: str, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)):
    category, sub = await _load(db, item_id)
    if sub is not None:
        await db["subcategory"].delete_one({"_id": sub["_id"]})
        await storage.delete(sub.get("image"))
        return {"success": True, "message": "Subcategory deleted successfully"}

    subs = await db["subcategory"].find({"category_id": category["_id"]}).to_list(length=None)
    await db["subcategory"].delete_many({"category_id": category["_id"]})
    await db["category"].delete_one({"_id": category["_id"]})
    for key in [category.get("image")] + [s.get("image") for s in subs]:
        await storage.delete(key)
    return {"success": True, "message": "Category deleted successfully"}


@router.put("/{item_id}/toggle-status")
async def toggle_status(
    item_id: str, payload: ToggleStatusIn, db=Depends(get_db), storage: ObjectStorage = Depends(get_storage)
):
    category, sub = await _load(db, item_id)
    if payload.type == "category":
        await db["category"].update_one(
            {"_id": category["_id"]}, {"$set": {"is_active": not category.get("is_active", True), "updated_at": utcnow()}}
        )
    else:
        if sub is None:
            raise ApiError(400, "Subcategory ID required for subcategory toggle")
        await db["subcategory"].update_one(
            {"_id": sub["_id"]}, {"$set": {"is_active": not sub.get("is_active", True), "updated_at": utcnow()}}
        )
    category, sub = await _load(db, item_id)
    return {"success": True, "data": await _pair_out(category, sub, storage),
            "message": f"{payload.type.capitalize()} status updated successfully"}


@router.post("/{item_id}/image")
async def upload_image(
    item_id: str,
    target: str = Query("category", pattern="^(category|subcategory)$"),
    file: UploadFile = File(...),
    db=Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    category, sub = await _load(db, item_id)
    doc, collection = (category, "category") if target == "category" else (sub, "subcategory")
    if doc is None:
        raise ApiError(400, "Subcategory ID required for subcategory image")

    key = await storage.upload_image(await file.read(), file.filename, file.content_type, f"categories/{collection}")
    await db[collection].update_one({"_id": doc["_id"]}, {"$set": {"image": key, "updated_at": utcnow()}})
    await storage.delete(doc.get("image"))
    return {"success": True, "data": {"key": key, "url": await storage.presign(key)}}
