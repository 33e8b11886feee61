from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vidcore.core.auth import AuthContext, get_auth_context
from vidcore.core.config import Settings, get_settings
from vidcore.core.storage import Storage
from vidcore.services.ingest_service import IngestService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):  # pragma: no cover
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.storage
    return storage


def get_app_settings() -> Settings:
    return get_settings()


async def get_ingest_service(
    request: Request,
    session: AsyncSession = Depends(get_session),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[IngestService]:
    # Optional prober/extractor overrides installed on app.state.
    prober = getattr(request.app.state, "prober", None)
    extractor = getattr(request.app.state, "extractor", None)
    service = IngestService(settings, storage, session, prober=prober, extractor=extractor)
    yield service


IngestServiceDependency = Annotated[IngestService, Depends(get_ingest_service)]
AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]


__all__ = [
    "get_session",
    "get_storage",
    "get_app_settings",
    "get_ingest_service",
    "IngestServiceDependency",
    "AuthDependency",
]
