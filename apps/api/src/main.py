"""GuardianNet panic alert FastAPI application."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from src.config import settings, validate_secret_key
from src.core.migrations import run_migrations
from src.database import close_database
from src.logging_config import get_logger, setup_logging
from src.middleware import CORRELATION_ID_HEADER, CorrelationIdMiddleware
from src.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from src.routers import health, panic_alert

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    validate_secret_key()
    if settings.run_migrations_on_startup:
        await asyncio.to_thread(run_migrations)
    logger.info("GuardianNet API started")

    yield

    logger.info("Shutting down GuardianNet API...")
    await close_database()
    logger.info("GuardianNet API shutdown complete")


app = FastAPI(
    title="GuardianNet API",
    description="Panic alert escalation to trusted contacts",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Middleware (order matters: first added = last executed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[CORRELATION_ID_HEADER],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(panic_alert.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "GuardianNet API",
        "version": "0.1.0",
        "docs": "/docs",
    }
