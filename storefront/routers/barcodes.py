import logging

from fastapi import APIRouter, Depends

from ..database import get_db
from ..errors import ApiError
from ..schemas import BarcodeIn
from ..services.barcode import generate_ean13, validate_ean13

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/online/barcodes", tags=["barcodes"])

MAX_ATTEMPTS = 10


async def barcode_in_use(db, barcode: str) -> bool:
    return await db["online_product"].find_one({"variants.barcode": barcode}, {"_id": 1}) is not None


@router.post("/generate")
async def generate_barcode(db=Depends(get_db)):
    for _ in range(MAX_ATTEMPTS):
        barcode = generate_ean13()
        if not await barcode_in_use(db, barcode):
            return {"success": True, "data": {"barcode": barcode, "format": "EAN-13"}}
        logger.info("Generated barcode %s already in use, retrying", barcode)
    raise ApiError(500, "Failed to generate unique barcode. Please try again.")


@router.post("/validate")
async def validate_barcode(payload: BarcodeIn, db=Depends(get_db)):
    valid, message = validate_ean13(payload.barcode.strip())
    if not valid:
        return {"success": True, "data": {"valid": False, "unique": False, "message": message}}
    unique = not await barcode_in_use(db, payload.barcode.strip())
    return {
        "success": True,
        "data": {
            "valid": True,
            "unique": unique,
            "message": "Valid and unique barcode" if unique else "Barcode already exists in another product",
        },
    }
