from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from vidcore.api.v1 import get_api_router
from vidcore.core.config import get_settings
from vidcore.core.db import create_engine, create_session_factory
from vidcore.core.logging import configure_logging, level_from_name
from vidcore.core.storage import get_storage


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    storage = get_storage(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.storage = storage
        app.state.engine = engine
        app.state.session_factory = session_factory
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    app.include_router(get_api_router())
    return app


__all__ = ["create_app"]
