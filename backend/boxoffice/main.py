"""
Boxoffice API - Main Application Entry Point

Event ticketing with:
- Oversell-proof inventory reservation (guarded atomic updates)
- Idempotent payment completion driven by processor webhooks
- Exactly-once ticket issuance and one-time door check-in
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boxoffice.api.errors import register_exception_handlers
from boxoffice.api.middleware import RequestLoggingMiddleware
from boxoffice.api.router import api_router
from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger, setup_logging
from boxoffice.core.metrics import metrics_endpoint
from boxoffice.db.session import get_engine, get_sessionmaker
from boxoffice.infrastructure.redis_client import close_redis, get_redis
from boxoffice.services.cache_service import get_cache_stats
from boxoffice.services.context import build_context, make_notifier
from boxoffice.stores.sql_store import SqlTicketingStore

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        payment_provider=settings.PAYMENT_PROVIDER,
    )

    notifier = make_notifier(settings)
    app.state.ticketing = build_context(
        SqlTicketingStore(get_sessionmaker()),
        notifier=notifier,
        settings=settings,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache and webhook dedupe")

    yield

    close = getattr(notifier, "close", None)
    if close is not None:
        await close()
    await close_redis()
    await get_engine().dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event ticketing API with concurrency-safe inventory and idempotent payments",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL] if settings.ENVIRONMENT == "production" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "payment_provider": settings.PAYMENT_PROVIDER,
        "cache": cache_stats,
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


@app.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_endpoint()
