import logging

from fastapi import APIRouter, Depends

from ..database import get_db, serialize, utcnow
from ..errors import ApiError
from ..schemas import CompanySettingsIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/web/company", tags=["company"])


def default_settings() -> dict:
    return CompanySettingsIn.model_construct(company_name="", email="", phone="").model_dump()


@router.get("")
async def get_company_settings(db=Depends(get_db)):
    doc = await db["company_settings"].find_one({})
    if not doc:
        return {"success": True, "data": default_settings()}
    return {"success": True, "data": serialize(doc)}


@router.post("")
async def save_company_settings(payload: CompanySettingsIn, db=Depends(get_db)):
    data = {k: v.strip() if isinstance(v, str) else v for k, v in payload.model_dump().items()}
    if not data["company_name"]:
        raise ApiError(400, "Company name is required")
    if not data["phone"]:
        raise ApiError(400, "Phone is required")

    now = utcnow()
    # Single settings record: update whatever exists or create it.
    await db["company_settings"].update_one(
        {}, {"$set": {**data, "updated_at": now}, "$setOnInsert": {"created_at": now}}, upsert=True
    )
    logger.info("Company settings saved for %s", data["company_name"])
    doc = await db["company_settings"].find_one({})
    return {"success": True, "message": "Company settings saved successfully", "data": serialize(doc)}
