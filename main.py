import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
import database
from admin import router as admin_router, users_router as admin_users_router
from admin_catalog import categories_router as admin_categories_router, products_router as admin_products_router
from admin_orders import analytics_router as admin_analytics_router, orders_router as admin_orders_router
from auth import router as auth_router
from catalog import router as catalog_router
from coupons import admin_router as admin_coupons_router, router as coupons_router
from delivery_tracking import router as delivery_tracking_router
from notifications import admin_router as admin_notifications_router, router as notifications_router
from orders import router as orders_router
from recommendations import router as recommendations_router
from rewards import router as rewards_router
from seed import ensure_seeded, router as seed_router
from user_details import router as user_details_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is None:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; running without a database")
    else:
        database.ensure_indexes(database.db)
        if config.AUTO_SEED:
            logger.info("Auto-seed: %s", ensure_seeded(database.db))
    yield


app = FastAPI(title="TryOn Collective API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (
    auth_router,
    catalog_router,
    user_details_router,
    orders_router,
    delivery_tracking_router,
    rewards_router,
    recommendations_router,
    coupons_router,
    notifications_router,
    admin_router,
    admin_users_router,
    admin_products_router,
    admin_categories_router,
    admin_orders_router,
    admin_analytics_router,
    admin_coupons_router,
    admin_notifications_router,
    seed_router,
):
    app.include_router(router)


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "TryOn Collective API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
