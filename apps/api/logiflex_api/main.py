"""LogiFlex API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from logiflex_api import __version__
from logiflex_api.errors import MarketplaceError
from logiflex_api.middleware.correlation import CorrelationIDMiddleware
from logiflex_api.routes import bids, cargo, ettn, messages, notifications, rws, transactions, users
from logiflex_api.settings import get_settings

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting LogiFlex API...")
    try:
        settings.validate_production_settings()

        from logiflex_api.ettn.signer import get_eds_service

        eds = get_eds_service()
        logger.info(f"Signature service initialized: {type(eds).__name__}")
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    yield
    logger.info("Shutting down LogiFlex API...")


app = FastAPI(
    title="LogiFlex API",
    description="Logistics marketplace: bids, transactions, reputation and E-TTN co-signing",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(cargo.router)
app.include_router(bids.router)
app.include_router(transactions.router)
app.include_router(rws.router)
app.include_router(ettn.router)
app.include_router(messages.router)
app.include_router(notifications.router)
app.include_router(users.router)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    """Render business-rule rejections."""
    logger.info(
        f"Request rejected: {exc.message}",
        extra={
            "code": exc.code,
            "path": request.url.path,
            "correlation_id": getattr(request.state, "correlation_id", None),
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "logiflex-api",
        "version": __version__,
    }


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    import redis
    from sqlalchemy import text

    from logiflex_api.db.session import SessionLocal

    checks = {
        "database": False,
        "redis": None,  # None if not required, True/False if required
    }

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    # Redis is only on the request path when notifications go through the worker
    if settings.notification_backend == "celery":
        try:
            redis_client = redis.from_url(settings.redis_url, decode_responses=True)
            redis_client.ping()
            checks["redis"] = True
        except Exception as e:
            logger.error(f"Redis check failed: {e}")
            checks["redis"] = False

    all_ready = all(value for value in checks.values() if value is not None)

    return JSONResponse(
        content={
            "status": "ready" if all_ready else "not_ready",
            "checks": checks,
        },
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "LogiFlex API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }
