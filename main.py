"""
EventPass FastAPI Backend
Event registration, ticketing and merchandise purchases with Mercado Pago
"""

import logging
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
import redis

from config import settings
from database import DatabaseManager
from app.models import audit
from app.routes import purchases, webhooks
from app.services.audit_service import AuditService
from app.services.payment_gateway import MercadoPagoGateway, GatewayConfig

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger("eventpass")

redis_client = redis.Redis.from_url(settings.REDIS_URL, socket_connect_timeout=5)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info(f"{settings.APP_NAME} backend starting...")

    if not settings.SKIP_DB_TABLE_CREATION:
        DatabaseManager.create_all_tables()
        logger.info("Database tables created")
    else:
        logger.info("SKIP_DB_TABLE_CREATION is true, tables are managed by alembic migrations")

    try:
        DatabaseManager.ping()
        logger.info("Database connection established")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")

    if not settings.MERCADO_PAGO_ACCESS_TOKEN:
        logger.warning("MERCADO_PAGO_ACCESS_TOKEN is not set, payments will be rejected by the gateway")
    if not settings.MERCADO_PAGO_WEBHOOK_SECRET:
        logger.warning("MERCADO_PAGO_WEBHOOK_SECRET is not set, every webhook will be rejected")

    app.state.payment_gateway = MercadoPagoGateway(GatewayConfig.from_settings(settings))

    yield

    # Shutdown
    logger.info(f"{settings.APP_NAME} backend shutting down...")


# Create FastAPI app
app = FastAPI(
    title="EventPass API",
    description="Event registration, ticketing and merchandise purchases",
    version=settings.APP_VERSION,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Trusted host middleware
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.ALLOWED_HOSTS
)


# Performance monitoring middleware
@app.middleware("http")
async def performance_middleware(request: Request, call_next):
    """Monitor API performance"""
    start_time = time.time()

    response = await call_next(request)

    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    if process_time > settings.SLOW_REQUEST_THRESHOLD:
        logger.warning(
            f"Slow request: {request.method} {request.url.path} took {process_time:.2f}s "
            f"(status {response.status_code})"
        )

    return response


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    AuditService.log_event(
        event_type=audit.AuditEventType.UNHANDLED_EXCEPTION,
        event_level=audit.AuditLevel.ERROR,
        event_message=f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        event_details={
            "path": request.url.path,
            "method": request.method,
            "error": str(exc),
            "type": type(exc).__name__
        },
        resource_type="request"
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    """System health check"""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "services": {}
    }

    # Check Redis
    try:
        redis_client.ping()
        health_status["services"]["redis"] = "healthy"
    except Exception:
        health_status["services"]["redis"] = "unhealthy"
        health_status["status"] = "degraded"

    # Check Database
    try:
        DatabaseManager.ping()
        health_status["services"]["database"] = "healthy"
        health_status["services"]["database_pool"] = DatabaseManager.get_pool_status()
    except Exception:
        health_status["services"]["database"] = "unhealthy"
        health_status["status"] = "degraded"

    return health_status


# Root endpoint
@app.get("/")
async def root():
    """Welcome message and API information"""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "description": "Event registration, ticketing and merchandise purchases",
        "status": "running",
        "documentation": "/api/docs",
        "health_check": "/health"
    }


# Include routers
app.include_router(purchases.router, prefix="/api", tags=["Purchases"])
app.include_router(webhooks.router, prefix="/webhook", tags=["Webhooks"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=5000,
        reload=settings.DEBUG,
        access_log=settings.DEBUG
    )
