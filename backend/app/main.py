from fastapi import Depends, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
import logging

from app.core.config import settings
from app.core.database import connect_to_mongo, close_mongo_connection, ensure_indexes, get_database
from app.api.deps import get_db
from app.api.routes import addresses, cart, checkout, coupons, orders, session

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Storefront API for a chocolate shop - cart pricing, promotions, coupons and checkout",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    logger.info("Starting up storefront backend...")
    await connect_to_mongo()
    await ensure_indexes(get_database())
    logger.info("Storefront backend started successfully")


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up services on shutdown."""
    logger.info("Shutting down storefront backend...")
    await close_mongo_connection()
    logger.info("Storefront backend shut down successfully")


# Health check endpoint
@app.get("/health")
async def health_check(db: AsyncIOMotorDatabase = Depends(get_db)):
    """Health check endpoint. Answers 503 when MongoDB does not respond to a ping."""
    try:
        await db.command("ping")
    except PyMongoError as e:
        logger.error(f"Health check could not reach MongoDB: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable", "service": "cacao-storefront", "database": "unreachable"}
        )
    return {
        "status": "healthy",
        "service": "cacao-storefront",
        "version": API_VERSION,
        "database": "ok"
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.PROJECT_NAME,
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
        "cart": f"{settings.API_V1_PREFIX}/cart",
        "checkout": f"{settings.API_V1_PREFIX}/checkout",
        "guest_header": settings.GUEST_HEADER_NAME
    }


# Include routers
app.include_router(cart.router, prefix=f"{settings.API_V1_PREFIX}/cart", tags=["Cart"])
app.include_router(coupons.router, prefix=f"{settings.API_V1_PREFIX}/coupons", tags=["Coupons"])
app.include_router(checkout.router, prefix=f"{settings.API_V1_PREFIX}/checkout", tags=["Checkout"])
app.include_router(orders.router, prefix=f"{settings.API_V1_PREFIX}/orders", tags=["Orders"])
app.include_router(addresses.router, prefix=f"{settings.API_V1_PREFIX}/addresses", tags=["Addresses"])
app.include_router(session.router, prefix=f"{settings.API_V1_PREFIX}/session", tags=["Session"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
