from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from paywatch.config import Settings, get_settings
from paywatch.db import create_db_engine, create_session_factory
from paywatch.logging_config import configure_logging, request_id_middleware
from paywatch.routes.api import api_router, reminders_validation_error_handler

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info(
        "Starting PayWatch application",
        extra={"timezone": settings.timezone, **settings.environment_check()},
    )
    yield
    logger.info("Shutting down PayWatch application")
    app.state.engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="PayWatch", version="0.1.0", lifespan=lifespan)

    engine = create_db_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)

    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(RequestValidationError, reminders_validation_error_handler)

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run("paywatch.main:app", host=settings.app_host, port=settings.app_port)
