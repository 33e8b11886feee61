from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from vidcore.core.db import create_engine, create_session_factory
from vidcore.core.errors import NotFound, OwnershipViolation, RecordConflict
from vidcore.db.models import Record, RecordStatus
from vidcore.services.record_store import RecordPatch, RecordStore


def _record(owner_id: str = "owner-a", *, created_at: datetime | None = None, **overrides) -> Record:
    fields = dict(
        record_id=uuid4().hex,
        owner_id=owner_id,
        title="clip.mp4",
        location=f"media/{uuid4().hex}-clip.mp4",
        mime_type="video/mp4",
        size_bytes=1024,
        duration_s=0.0,
        thumbnail_locations=[],
        status=RecordStatus.processing,
    )
    if created_at is not None:
        fields["created_at"] = created_at
    fields.update(overrides)
    return Record(**fields)


def _run(settings, scenario):
    async def _main():
        engine = create_engine(settings)
        factory = create_session_factory(engine)
        try:
            return await scenario(factory)
        finally:
            await engine.dispose()

    return asyncio.run(_main())


def test_create_then_get(settings):
    async def scenario(factory):
        async with factory() as session:
            store = RecordStore(session)
            record_id = await store.create(_record(title="Holiday"))
        async with factory() as session:
            record = await RecordStore(session).get(record_id)
        return record_id, record

    record_id, record = _run(settings, scenario)
    assert record.record_id == record_id
    assert record.title == "Holiday"
    assert record.status is RecordStatus.processing
    assert record.version == 1


def test_create_requires_location(settings):
    async def scenario(factory):
        async with factory() as session:
            await RecordStore(session).create(_record(location=""))

    with pytest.raises(ValueError):
        _run(settings, scenario)


def test_get_unknown_is_not_found(settings):
    async def scenario(factory):
        async with factory() as session:
            await RecordStore(session).get("missing")

    with pytest.raises(NotFound):
        _run(settings, scenario)


def test_list_is_owner_scoped_and_newest_first(settings):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)

    async def scenario(factory):
        async with factory() as session:
            store = RecordStore(session)
            older = await store.create(_record("owner-a", created_at=base))
            newer = await store.create(_record("owner-a", created_at=base + timedelta(minutes=5)))
            await store.create(_record("owner-b", created_at=base + timedelta(minutes=1)))
            listed = await store.list_by_owner("owner-a")
            empty = await store.list_by_owner("owner-c")
        return older, newer, listed, empty

    older, newer, listed, empty = _run(settings, scenario)
    assert [record.record_id for record in listed] == [newer, older]
    assert list(empty) == []


def test_get_for_owner_rejects_other_owner(settings):
    async def scenario(factory):
        async with factory() as session:
            store = RecordStore(session)
            record_id = await store.create(_record("owner-a"))
            await store.get_for_owner("owner-b", record_id)

    with pytest.raises(OwnershipViolation):
        _run(settings, scenario)


def test_update_applies_only_given_fields(settings):
    async def scenario(factory):
        async with factory() as session:
            store = RecordStore(session)
            record_id = await store.create(_record(duration_s=0.0))
            return await store.update(
                record_id,
                RecordPatch(status=RecordStatus.ready, thumbnail_locations=["thumbs/a.jpg"]),
            )

    record = _run(settings, scenario)
    assert record.status is RecordStatus.ready
    assert record.thumbnail_locations == ["thumbs/a.jpg"]
    assert record.duration_s == 0.0
    assert record.failure_reason is None
    assert record.version == 2


def test_terminal_record_cannot_be_updated(settings):
    async def scenario(factory):
        async with factory() as session:
            store = RecordStore(session)
            record_id = await store.create(_record())
            await store.update(record_id, RecordPatch(status=RecordStatus.ready, duration_s=3.0))
            await store.update(record_id, RecordPatch(status=RecordStatus.failed, failure_reason="late"))

    with pytest.raises(RecordConflict):
        _run(settings, scenario)


def test_concurrent_write_is_a_conflict(settings, monkeypatch):
    async def scenario(factory):
        async with factory() as session:
            record_id = await RecordStore(session).create(_record())

        async with factory() as first, factory() as second:
            stale_store = RecordStore(first)
            stale = await stale_store.get(record_id)

            await RecordStore(second).update(record_id, RecordPatch(status=RecordStatus.processing, duration_s=1.0))

            async def _stale_get(_record_id):
                return stale

            monkeypatch.setattr(stale_store, "get", _stale_get)
            with pytest.raises(RecordConflict):
                await stale_store.update(record_id, RecordPatch(status=RecordStatus.ready, duration_s=9.0))

        async with factory() as session:
            return await RecordStore(session).get(record_id)

    record = _run(settings, scenario)
    assert record.status is RecordStatus.processing
    assert record.duration_s == 1.0
