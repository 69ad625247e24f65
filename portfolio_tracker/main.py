"""Entrypoint for the Portfolio Tracker FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portfolio_tracker import __version__
from portfolio_tracker.api.routes import api_router
from portfolio_tracker.config import get_settings
from portfolio_tracker.core.logging import setup_logging
from portfolio_tracker.core.telemetry import setup_telemetry
from portfolio_tracker.db.session import Database, database
from portfolio_tracker.schemas import HealthResponse
from portfolio_tracker.services.quotes import close_quote_gateway, get_quote_gateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI, db: Database):
    await db.create_all()
    logger.info("Portfolio tracker started against %s", db.safe_url)
    try:
        yield
    finally:
        await close_quote_gateway()
        await db.dispose()
        logger.info("Portfolio tracker stopped")


def create_app(db: Database | None = None) -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)
    database_instance = db or database

    app = FastAPI(
        title=f"{settings.app_name} API",
        version=__version__,
        lifespan=lambda app: _lifespan(app, database_instance),
    )
    app.state.database = database_instance
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_telemetry(app, settings, engine=database_instance.engine)
    app.include_router(api_router)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        quotes_mode = "live" if get_quote_gateway().configured else "synthetic"
        return HealthResponse(
            status="ok",
            service="portfolio-tracker",
            quotes_mode=quotes_mode,
            database_url=database_instance.safe_url,
        )

    logger.debug("Application configured with settings: %s", settings.dict_for_logging())
    return app


app = create_app()
