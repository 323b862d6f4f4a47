from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from app.core.config import settings
from app.core.database import connect_to_mongo, close_mongo_connection, ensure_indexes, get_database
from app.api.routes import cart, orders, pc_builder, products, session
from app.services.session_registry import CartSessionRegistry
from app.services.stores.device_store import MongoDeviceStore
from app.services.stores.mongo_cart_store import MongoCartStore

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="NexusGear storefront API: catalog, guest and account carts, PC build wizard and checkout",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def create_cart_sessions() -> CartSessionRegistry:
    """Registry whose carts read and write through the shared database handle."""
    return CartSessionRegistry(
        cart_store_factory=lambda: MongoCartStore(get_database()),
        device_store_factory=lambda device_id: MongoDeviceStore(get_database(), device_id),
        max_sessions=settings.CART_SESSION_LIMIT,
        idle_timeout=settings.CART_SESSION_IDLE_SECONDS
    )


app.state.cart_sessions = create_cart_sessions()


@app.on_event("startup")
async def startup_event():
    """Connect to MongoDB and make sure cart indexes exist."""
    logger.info(f"Starting {settings.PROJECT_NAME} backend (merge policy: {settings.CART_MERGE_POLICY})")
    await connect_to_mongo()
    await ensure_indexes(get_database())
    logger.info("Database ready")


@app.on_event("shutdown")
async def shutdown_event():
    """Dispose open cart sessions, then drop the database connection."""
    await app.state.cart_sessions.close_all()
    await close_mongo_connection()
    logger.info(f"{settings.PROJECT_NAME} backend stopped")


@app.get("/health")
async def health_check():
    """Liveness check with the number of open cart sessions."""
    return {
        "status": "healthy",
        "service": "nexusgear-backend",
        "version": VERSION,
        "cart_sessions": len(app.state.cart_sessions)
    }


@app.get("/")
async def root():
    """API entry points."""
    return {
        "name": settings.PROJECT_NAME,
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
        "api": settings.API_V1_PREFIX
    }


app.include_router(products.router, prefix=f"{settings.API_V1_PREFIX}/products", tags=["Products"])
app.include_router(cart.router, prefix=f"{settings.API_V1_PREFIX}/cart", tags=["Cart"])
app.include_router(session.router, prefix=f"{settings.API_V1_PREFIX}/session", tags=["Session"])
app.include_router(pc_builder.router, prefix=f"{settings.API_V1_PREFIX}/pc-builder", tags=["PC Builder"])
app.include_router(orders.router, prefix=f"{settings.API_V1_PREFIX}/orders", tags=["Orders"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
