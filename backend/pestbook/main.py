"""
Pest Control Booking API - Main Application Entry Point

Booking lifecycle and technician assignment engine:
- Overlap-free scheduling enforced by a PostgreSQL exclusion constraint
- Row-locked state transitions with an append-only audit trail
- Lead-to-customer promotion at signup in a single transaction
- Structured logging with request correlation, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pestbook.core.config import get_settings
from pestbook.core.errors import DomainError, ValidationError
from pestbook.core.logging import setup_logging, get_logger
from pestbook.core.metrics import metrics_endpoint
from pestbook.api.router import api_router
from pestbook.api.middleware import RequestLoggingMiddleware
from pestbook.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Serving service catalog without cache")

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Booking lifecycle and technician assignment for a pest-control company",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_store_error", error=exc.message, kind=exc.kind)
    else:
        logger.warning("request_rejected", error=exc.message, kind=exc.kind, status_code=exc.status_code)

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def _describe(errors: list[dict]) -> str:
    parts = []
    for error in errors:
        field = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{field}: {error['msg']}" if field else error["msg"])
    return "; ".join(parts) or "Invalid request"


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema failures use the same envelope as ValidationError raised by the services."""
    error = ValidationError(_describe(exc.errors()))
    logger.warning("request_rejected", error=error.message, kind=error.kind, status_code=error.status_code)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
