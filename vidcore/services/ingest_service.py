from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Optional, Sequence
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vidcore.core.config import Settings
from vidcore.core.errors import IngestionFailed, NotFound, RecordConflict
from vidcore.core.logging import get_logger
from vidcore.core.storage import Storage
from vidcore.db.models import Record, RecordStatus
from vidcore.ingest import (
    FFmpegThumbnailExtractor,
    FFprobeProber,
    MediaProber,
    Outcome,
    ProbeReport,
    ThumbnailExtractor,
    settle,
)

from .record_store import RecordPatch, RecordStore


@dataclass(slots=True)
class UploadMeta:
    original_filename: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    title: Optional[str] = None


class IngestService:
    """Stores an upload, analyses it, and keeps its record consistent.

    Storage must succeed before a record exists. Probe and thumbnail
    extraction then run concurrently; their expected failures only remove
    data from the record, which still ends ``ready``. An unexpected error in
    either branch ends the record ``failed`` and raises ``IngestionFailed``.
    """

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        session: AsyncSession,
        *,
        prober: MediaProber | None = None,
        extractor: ThumbnailExtractor | None = None,
    ):
        self.settings = settings
        self.storage = storage
        self.records = RecordStore(session)
        self.prober = prober or FFprobeProber.from_settings(settings, storage)
        self.extractor = extractor or FFmpegThumbnailExtractor.from_settings(settings, storage)
        self.logger = get_logger(component="ingest_service")

    async def ingest(self, *, owner_id: str, payload: bytes | BinaryIO, meta: UploadMeta) -> Record:
        logger = self.logger.bind(owner_id=owner_id, filename=meta.original_filename)

        location = await asyncio.to_thread(self.storage.put, payload, meta.original_filename)
        size_bytes = meta.size_bytes
        if size_bytes is None:
            size_bytes = self.storage.stat(location).size_bytes

        record = Record(
            record_id=uuid4().hex,
            owner_id=owner_id,
            title=meta.title or meta.original_filename,
            location=location,
            mime_type=meta.mime_type,
            size_bytes=size_bytes,
            duration_s=0.0,
            thumbnail_locations=[],
            status=RecordStatus.processing,
        )
        record_id = await self.records.create(record)
        logger = logger.bind(record_id=record_id)
        logger.info("ingest_stored", location=location, size_bytes=size_bytes)

        probe_result, thumb_result = await asyncio.gather(
            settle(self._probe(location)),
            settle(self.extractor.extract_thumbnail(location, self.settings.thumbnail_offset_s)),
            return_exceptions=True,
        )

        crashed = [result for result in (probe_result, thumb_result) if isinstance(result, BaseException)]
        if crashed:
            exc = crashed[0]
            logger.error("ingest_analysis_crashed", error=repr(exc), exc_info=exc)
            reason = f"analysis_error:{type(exc).__name__}"
            try:
                await self.records.update(record_id, RecordPatch(status=RecordStatus.failed, failure_reason=reason))
            except (RecordConflict, SQLAlchemyError) as mark_exc:
                await self.records.session.rollback()
                logger.error("ingest_mark_failed_error", error=repr(mark_exc))
            raise IngestionFailed(record_id, reason) from exc

        patch = self._reconcile(probe_result, thumb_result, logger)
        record = await self.records.update(record_id, patch)
        logger.info(
            "ingest_completed",
            status=record.status.value,
            duration_s=record.duration_s,
            thumbnails=len(record.thumbnail_locations),
        )
        return record

    async def _probe(self, location: str) -> ProbeReport:
        report = await self.prober.probe(location)
        report.require_duration()
        return report

    @staticmethod
    def _reconcile(probe: Outcome[ProbeReport], thumbnail: Outcome[str], logger: Any) -> RecordPatch:
        patch = RecordPatch(status=RecordStatus.ready, thumbnail_locations=[])
        if probe.ok:
            patch.duration_s = probe.value.duration_s
            patch.media_info = probe.value.as_media_info()
        else:
            logger.warning("probe_failed", reason=probe.error.reason, detail=probe.error.detail)
        if thumbnail.ok:
            patch.thumbnail_locations = [thumbnail.value]
        else:
            logger.warning("thumbnail_failed", reason=thumbnail.error.reason, detail=thumbnail.error.detail)
        return patch

    async def get_record(self, *, owner_id: str, record_id: str) -> Record:
        return await self.records.get_for_owner(owner_id, record_id)

    async def list_records(self, *, owner_id: str) -> Sequence[Record]:
        return await self.records.list_by_owner(owner_id)

    async def media_path(self, *, owner_id: str, record_id: str) -> tuple[Path, Optional[str]]:
        record = await self.records.get_for_owner(owner_id, record_id)
        return self.storage.path_for(record.location), record.mime_type

    async def read_thumbnail(self, *, owner_id: str, record_id: str, index: int = 0) -> bytes:
        record = await self.records.get_for_owner(owner_id, record_id)
        locations = record.thumbnail_locations or []
        if index < 0 or index >= len(locations):
            raise NotFound(f"{record_id}/thumbnails/{index}")
        return await asyncio.to_thread(self.storage.get, locations[index])


def record_snapshot(record: Record) -> dict[str, Any]:
    return {
        "id": record.record_id,
        "owner_id": record.owner_id,
        "title": record.title,
        "location": record.location,
        "mime_type": record.mime_type,
        "size_bytes": record.size_bytes,
        "duration_seconds": record.duration_s,
        "thumbnail_locations": list(record.thumbnail_locations or []),
        "media_info": record.media_info,
        "status": record.status.value,
        "failure_reason": record.failure_reason,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


__all__ = ["IngestService", "UploadMeta", "record_snapshot"]
