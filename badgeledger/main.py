"""BadgeLedger API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map BadgeLedgerError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database and service graph initialized on startup via lifespan context manager

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Services live on app.state and are read through api/deps.get_services
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from badgeledger.api.error_handlers import register_error_handlers
from badgeledger.api.routes import (
    admin_verification, capabilities, cron, entitlements, health, payments,
    verification,
)
from badgeledger.config import get_settings
from badgeledger.infrastructure import database
from badgeledger.infrastructure.observability import setup_logging
from badgeledger.services.container import build_production_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    database.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    app.state.services = build_production_services(settings)
    logger.info("BadgeLedger API started")
    yield
    if database.db_manager:
        await database.db_manager.dispose()
    logger.info("BadgeLedger API shutting down")


app = FastAPI(
    title="BadgeLedger API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes — explicit registration
app.include_router(health.router)
app.include_router(verification.router)
app.include_router(admin_verification.router)
app.include_router(entitlements.router)
app.include_router(entitlements.admin_router)
app.include_router(capabilities.router)
app.include_router(payments.router)
app.include_router(cron.router)

register_error_handlers(app)
