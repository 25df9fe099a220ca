import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import close_db, ensure_indexes, get_db
from .errors import install_error_handlers
from .logging_config import configure_logging
from .routers import (
    accounts,
    addresses,
    badges,
    barcodes,
    brands,
    cart,
    categories,
    company,
    coupons,
    cutting_styles,
    orders,
    products,
    purchase_orders,
    suppliers,
    wishlist,
)
from .scheduler import build_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    try:
        await ensure_indexes()
    except Exception:
        logger.exception("Could not create indexes")
    scheduler = None
    if settings.ENABLE_SCHEDULER:
        scheduler = build_scheduler()
        scheduler.start()
        logger.info("Scheduled jobs started (%s)", settings.SCHEDULER_TIMEZONE)
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    close_db()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_error_handlers(app)

for module_router in (
    accounts.router,
    addresses.router,
    badges.router,
    barcodes.router,
    brands.router,
    cart.router,
    categories.router,
    company.router,
    coupons.router,
    cutting_styles.router,
    orders.router,
    orders.my_orders_router,
    orders.admin_router,
    products.router,
    purchase_orders.router,
    suppliers.router,
    wishlist.router,
):
    app.include_router(module_router, prefix="/api")


@app.get("/")
async def root():
    return {"message": f"{settings.APP_NAME} running"}


@app.get("/test")
async def test():
    try:
        db = await get_db()
        colls = []
        try:
            colls = await db.list_collection_names()
            connected = True
        except Exception:
            logger.warning("Database ping failed", exc_info=True)
            connected = False
        return {
            "backend": "✅ Running",
            "database": "✅ Available" if connected else "❌ Not Available",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": db.name,
            "connection_status": "Connected" if connected else "Not Connected",
            "collections": colls,
        }
    except Exception as e:
        return {"backend": "Error", "error": str(e)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
