import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .errors import GatewayError
from .utils.logging import setup_logging

# Configure logging
setup_logging()
logger = logging.getLogger(__name__)

# Import after logging setup
from .database import create_tables
from .storage import StorageBackend, get_store
from .api.admin import router as admin_router
from .api.gateway import router as gateway_router
from .api.query_logs import router as query_logs_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("🚀 Starting DB Gateway Service...")

    if settings.storage_backend == "sql":
        create_tables()
        logger.info("✅ Database initialized")

    store = get_store()
    logger.info(f"✅ Storage backend: {store.name}")

    if not settings.admin_api_key:
        logger.warning("⚠️ ADMIN_API_KEY not set, admin routes are disabled")

    logger.info("🎯 DB Gateway Service is ready!")

    yield

    # Shutdown
    logger.info("🛑 Shutting down DB Gateway Service...")


# Create FastAPI app
app = FastAPI(
    title="DB Gateway Service",
    description="Generic API-key authenticated data endpoint over tenant-defined tables",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title="DB Gateway Service",
        version="1.0.0",
        description="Generic API-key authenticated data endpoint over tenant-defined tables",
        routes=app.routes,
    )

    # Add security definitions
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "AdminKey": {
            "type": "apiKey",
            "in": "header",
            "name": "X-Admin-Key",
            "description": "Admin key for the management routes",
        },
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "API Key",
            "description": f"Enter your API key (e.g., {settings.api_key_prefix}abc123...)",
        },
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

# Unrestricted CORS: the gateway is called straight from browsers
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers, all answering with the flat {"error": ...} envelope
@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        logger.error(f"Gateway error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = "Not found"
    return JSONResponse(status_code=exc.status_code, content={"error": message})


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error(f"Internal server error: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Root endpoints
@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": "DB Gateway Service",
        "version": "1.0.0",
        "description": "Generic data endpoint over tenant-defined tables",
        "status": "online",
        "endpoints": {
            "health": "/health",
            "docs": "/docs",
            "gateway": "/v1/db-api",
            "query_logs": "/v1/query-logs",
            "admin": "/admin",
        },
    }


@app.get("/health")
async def health_check(store: StorageBackend = Depends(get_store)):
    """Health check endpoint."""
    try:
        # round trip to the backing store
        store.get_database("health-check")
        return {
            "status": "healthy",
            "storage": store.name,
            "column_enforcement": settings.enforce_column_types,
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503, content={"status": "unhealthy", "error": str(e)}
        )


# Include API routers
app.include_router(gateway_router)
app.include_router(query_logs_router)
app.include_router(admin_router)


# Development server
if __name__ == "__main__":
    import uvicorn

    logger.info("🚀 Starting development server...")
    uvicorn.run(
        "db_gateway.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=settings.workers,
        log_level=settings.log_level,
    )
