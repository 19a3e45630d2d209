from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from dropmarket.config import settings
from dropmarket.api.v1.router import api_router
from dropmarket.database import init_db, async_session_factory
from dropmarket.jobs.scheduler import start_scheduler, shutdown_scheduler
from dropmarket.services.catalog_service import register_catalog_cache_invalidation


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    if settings.AUTO_CREATE_TABLES:
        await init_db()

    register_catalog_cache_invalidation()

    # Start background job scheduler
    start_scheduler()

    yield

    # Shutdown
    shutdown_scheduler()
    logger.info("Shutdown complete")


OPENAPI_TAGS = [
    {"name": "Catalog", "description": "Supplier lists, product import, sellable units and pickup points"},
    {"name": "Interests", "description": "Consumer interest that proposes drops"},
    {"name": "Drops", "description": "Drop lifecycle: approval, activation, pause and closing"},
    {"name": "Bookings", "description": "Claim, capture and release of units in a drop"},
    {"name": "Orders", "description": "Orders of completed drops, pickup and returns"},
    {"name": "Notifications", "description": "Consumer notifications"},
]

API_DESCRIPTION = """
## Drop Market API

Group-buying marketplace. Consumers register interest in products of a
supplier list at a pickup point; once enough interest accumulates a time
boxed **drop** opens and every booking pushes the shared discount up.

### Identity

Requests that act for a user carry the authenticated user id in the
`X-User-Id` header.

### Error Codes

| Code | Description |
|------|-------------|
| 401 | Missing or invalid user identity |
| 404 | Not Found |
| 409 | Out of stock, drop changed state, or invalid transition |
| 422 | Invalid selection or configuration |
| 503 | Transient failure, retry later |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unhandled errors become a JSON 500 with the failing path."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")

    error_detail = {
        "error": str(exc) if settings.DEBUG else "Internal server error",
        "type": type(exc).__name__,
        "path": str(request.url.path),
        "method": request.method,
    }
    response = JSONResponse(status_code=500, content=error_detail)

    # Error responses skip the CORS middleware
    origin = request.headers.get("origin", "")
    if origin in settings.CORS_ORIGINS or "*" in settings.CORS_ORIGINS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"

    return response


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except SQLAlchemyError as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
