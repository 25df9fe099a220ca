import logging
from typing import Optional

import bcrypt
from fastapi import APIRouter, BackgroundTasks, Depends

from ..database import create_document, get_db, serialize, to_object_id, utcnow
from ..errors import ApiError
from ..mailer import Mailer, get_mailer
from ..notifications import PushNotifier, deliver, get_notifier, new_user_message, welcome_message
from ..schemas import AdminCreate, FcmTokenIn, FcmTokenRemove, LoginIn, UserCreate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["accounts"])

_ACCOUNT_COLLECTIONS = {"user": "user", "admin": "admin"}


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def public_user(doc: dict) -> dict:
    out = serialize(doc)
    out.pop("password_hash", None)
    return out


@router.post("/users", status_code=201)
async def register_user(
    payload: UserCreate,
    background: BackgroundTasks,
    db=Depends(get_db),
    notifier: PushNotifier = Depends(get_notifier),
    mailer: Mailer = Depends(get_mailer),
):
    email = payload.email.lower()
    if await db["user"].find_one({"email": email}):
        raise ApiError(400, "An account with this email already exists")

    user = await create_document("user", {
        "name": payload.name.strip(),
        "email": email,
        "password_hash": hash_password(payload.password) if payload.password else None,
        "provider": payload.provider,
        "google_id": payload.google_id,
        "phone": payload.phone,
        "is_verified": payload.provider == "google",
        "fcm_tokens": [],
    })
    user_id = str(user["_id"])
    customer = await create_document("customer", {
        "user_id": user_id,
        "name": user["name"],
        "email": email,
        "phone": payload.phone,
        "address_count": 0,
    })
    logger.info("Registered user %s (%s)", user_id, payload.provider)

    background.add_task(mailer.send_welcome, user["name"], email)
    background.add_task(deliver, notifier.to_user, db, user_id, welcome_message(user["name"]))
    background.add_task(
        deliver, notifier.to_all_admins, db, new_user_message(user["name"], email, str(customer["_id"]))
    )
    return {"success": True, "data": {**public_user(user), "customer_id": str(customer["_id"])}}


@router.get("/users/{user_id}")
async def get_user(user_id: str, db=Depends(get_db)):
    user = await db["user"].find_one({"_id": to_object_id(user_id, "user id")})
    if not user:
        raise ApiError(404, "User not found")
    customer = await db["customer"].find_one({"user_id": user_id}, {"_id": 1})
    return {"success": True, "data": {**public_user(user), "customer_id": str(customer["_id"]) if customer else None}}


@router.post("/auth/login")
async def login(payload: LoginIn, db=Depends(get_db)):
    user = await db["user"].find_one({"email": payload.email.lower()})
    if not user:
        raise ApiError(401, "Invalid email or password")
    if not user.get("is_active", True):
        raise ApiError(401, "Account is deactivated. Please contact administrator.")
    if not user.get("is_verified"):
        raise ApiError(401, "Please verify your email before signing in.")
    if not user.get("password_hash") and user.get("provider") == "google":
        raise ApiError(401, "Please sign in with Google")
    if not check_password(payload.password, user.get("password_hash")):
        raise ApiError(401, "Invalid email or password")

    now = utcnow()
    await db["user"].update_one({"_id": user["_id"]}, {"$set": {"last_login": now}})
    user["last_login"] = now
    customer = await db["customer"].find_one({"user_id": str(user["_id"])}, {"_id": 1})
    logger.info("User %s signed in", user["_id"])
    return {
        "success": True,
        "message": "Login successful",
        "data": {**public_user(user), "customer_id": str(customer["_id"]) if customer else None},
    }


@router.post("/users/{user_id}/verify")
async def verify_user(user_id: str, db=Depends(get_db)):
    result = await db["user"].update_one(
        {"_id": to_object_id(user_id, "user id")}, {"$set": {"is_verified": True, "updated_at": utcnow()}}
    )
    if result.matched_count == 0:
        raise ApiError(404, "User not found")
    return {"success": True, "message": "User verified"}


@router.post("/admins", status_code=201)
async def create_admin(payload: AdminCreate, db=Depends(get_db)):
    email = payload.email.lower()
    if await db["admin"].find_one({"email": email}):
        raise ApiError(400, "An admin with this email already exists")
    admin = await create_document("admin", {**payload.model_dump(), "email": email, "fcm_tokens": []})
    return {"success": True, "data": serialize(admin)}


@router.get("/admins")
async def list_admins(db=Depends(get_db)):
    admins = await db["admin"].find().sort("created_at", -1).to_list(length=None)
    return {"success": True, "data": [serialize(a) for a in admins]}


@router.post("/auth/fcm-token")
async def save_fcm_token(payload: FcmTokenIn, db=Depends(get_db)):
    collection = _ACCOUNT_COLLECTIONS[payload.user_type]
    result = await db[collection].update_one(
        {"_id": to_object_id(payload.user_id, "user id")},
        {"$addToSet": {"fcm_tokens": payload.fcm_token}, "$set": {"updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise ApiError(404, f"{payload.user_type.capitalize()} not found")
    return {"success": True, "message": "FCM token saved"}


@router.delete("/auth/fcm-token")
async def remove_fcm_token(payload: FcmTokenRemove, db=Depends(get_db)):
    collection = _ACCOUNT_COLLECTIONS[payload.user_type]
    if payload.fcm_token:
        update = {"$pull": {"fcm_tokens": payload.fcm_token}}
    else:
        update = {"$set": {"fcm_tokens": []}}
    result = await db[collection].update_one({"_id": to_object_id(payload.user_id, "user id")}, update)
    if result.matched_count == 0:
        raise ApiError(404, f"{payload.user_type.capitalize()} not found")
    return {"success": True, "message": "FCM token removed"}
