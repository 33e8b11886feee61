from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from vidcore.core.errors import NotFound, OwnershipViolation, RecordConflict
from vidcore.core.logging import get_logger
from vidcore.db.models import Record, RecordStatus


@dataclass(slots=True)
class RecordPatch:
    """Mutable fields of a record. ``None`` leaves the field untouched."""

    status: RecordStatus
    duration_s: Optional[float] = None
    thumbnail_locations: Optional[list[str]] = None
    media_info: Optional[dict[str, Any]] = None
    failure_reason: Optional[str] = None


class RecordStore:
    """Persistence for records, scoped by owner at every query."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = get_logger(component="record_store")

    async def create(self, record: Record) -> str:
        if not record.location:
            raise ValueError("record_without_location")
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return record.record_id

    async def get(self, record_id: str) -> Record:
        record = await self.session.get(Record, record_id, populate_existing=True)
        if record is None:
            raise NotFound(record_id)
        return record

    async def get_for_owner(self, owner_id: str, record_id: str) -> Record:
        record = await self.get(record_id)
        if record.owner_id != owner_id:
            raise OwnershipViolation(record_id)
        return record

    async def list_by_owner(self, owner_id: str) -> Sequence[Record]:
        stmt = (
            select(Record)
            .where(Record.owner_id == owner_id)
            .order_by(Record.created_at.desc(), Record.record_id.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def update(self, record_id: str, patch: RecordPatch) -> Record:
        record = await self.get(record_id)
        if record.status.is_terminal:
            raise RecordConflict(f"{record_id} is already {record.status.value}")

        record.status = patch.status
        if patch.duration_s is not None:
            record.duration_s = patch.duration_s
        if patch.thumbnail_locations is not None:
            record.thumbnail_locations = list(patch.thumbnail_locations)
        if patch.media_info is not None:
            record.media_info = patch.media_info
        if patch.failure_reason is not None:
            record.failure_reason = patch.failure_reason

        try:
            await self.session.commit()
        except StaleDataError as exc:
            await self.session.rollback()
            self.logger.warning("record_update_conflict", record_id=record_id)
            raise RecordConflict(f"{record_id} was modified concurrently") from exc
        await self.session.refresh(record)
        return record


__all__ = ["RecordPatch", "RecordStore"]
