"""wakecheck FastAPI application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from wakecheck import __version__
from wakecheck.config import settings, validate_secret_key
from wakecheck.database import close_database
from wakecheck.logging_config import get_logger, setup_logging
from wakecheck.middleware import CorrelationIdMiddleware
from wakecheck.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from wakecheck.routers import contacts, escalations, friends, health, users
from wakecheck.services.scheduler import start_scheduler, stop_scheduler

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Migrations run before uvicorn starts (wakecheck.core.migrations)
    validate_secret_key()
    start_scheduler()
    logger.info("wakecheck API started", version=__version__)

    yield

    logger.info("Shutting down wakecheck API...")
    stop_scheduler()
    await close_database()
    logger.info("wakecheck API shutdown complete")


app = FastAPI(
    title="wakecheck API",
    description="Alarm escalation to friends when you do not wake up",
    version=__version__,
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
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(users.router)
app.include_router(contacts.router)
app.include_router(friends.router)
app.include_router(escalations.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "wakecheck API",
        "version": __version__,
        "docs": "/docs",
    }
