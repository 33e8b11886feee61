from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from vidcore.api.v1.routes_admin import probe_binary
from vidcore.core.config import Settings, get_settings
from vidcore.core.db import create_engine, create_schema, create_session_factory
from vidcore.core.errors import ExtractionFailed, IngestionFailed, ProbeFailed, StorageWriteFailed
from vidcore.core.logging import configure_logging, level_from_name
from vidcore.core.storage import LocalStorage, get_storage
from vidcore.ingest.probe import FFprobeProber
from vidcore.ingest.thumbnails import FFmpegThumbnailExtractor
from vidcore.services.ingest_service import IngestService, UploadMeta, record_snapshot

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))

    if getattr(args, "check", False):
        _run_environment_check(settings)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args, settings)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="vidcore ingest CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    probe_parser = subparsers.add_parser("probe", help="Run ffprobe and print the probe report")
    probe_parser.add_argument("--file", required=True, help="Path to the source media file")
    probe_parser.set_defaults(func=_cmd_probe)

    thumb_parser = subparsers.add_parser("thumb", help="Extract one thumbnail into a thumbs/ folder beside the file")
    thumb_parser.add_argument("--file", required=True, help="Path to the source media file")
    thumb_parser.add_argument("--offset", type=float, default=None, help="Seek offset in seconds")
    thumb_parser.set_defaults(func=_cmd_thumb)

    ingest_parser = subparsers.add_parser("ingest", help="Store a file, analyse it, and print its record")
    ingest_parser.add_argument("--file", required=True, help="Path to the source media file")
    ingest_parser.add_argument("--owner", required=True, help="Owner identifier to record")
    ingest_parser.add_argument("--title", default=None, help="Display title (defaults to the filename)")
    ingest_parser.set_defaults(func=_cmd_ingest)

    list_parser = subparsers.add_parser("list", help="List an owner's records, newest first")
    list_parser.add_argument("--owner", required=True, help="Owner identifier")
    list_parser.set_defaults(func=_cmd_list)
    return parser


def _cmd_probe(args: argparse.Namespace, settings: Settings) -> None:
    media_path = _existing_file(args.file)
    # Root a throwaway store at the file's directory so the prober can address it.
    storage = LocalStorage(media_path.parent)
    prober = FFprobeProber.from_settings(settings, storage)
    try:
        report = asyncio.run(prober.probe(media_path.name))
    except ProbeFailed as exc:
        console.print(f"[red]probe failed:[/] {exc}")
        sys.exit(3)
    console.print_json(data=asdict(report))


def _cmd_thumb(args: argparse.Namespace, settings: Settings) -> None:
    media_path = _existing_file(args.file)
    storage = LocalStorage(media_path.parent)
    extractor = FFmpegThumbnailExtractor.from_settings(settings, storage)
    offset_s = settings.thumbnail_offset_s if args.offset is None else args.offset
    try:
        location = asyncio.run(extractor.extract_thumbnail(media_path.name, offset_s))
    except ExtractionFailed as exc:
        console.print(f"[red]thumbnail failed:[/] {exc}")
        sys.exit(3)
    console.print(f"[green]thumbnail written:[/] {storage.path_for(location)}")


def _cmd_ingest(args: argparse.Namespace, settings: Settings) -> None:
    """Run the full ingestion pipeline for one local file.

    Args:
        args: The command-line arguments.
        settings: The active settings.
    """
    media_path = _existing_file(args.file)
    mime_type, _ = mimetypes.guess_type(media_path.name)
    meta = UploadMeta(
        original_filename=media_path.name,
        mime_type=mime_type,
        size_bytes=media_path.stat().st_size,
        title=args.title,
    )

    async def _runner() -> dict[str, Any]:
        async def _ingest(service: IngestService) -> dict[str, Any]:
            with media_path.open("rb") as handle:
                record = await service.ingest(owner_id=args.owner, payload=handle, meta=meta)
            return record_snapshot(record)

        return await _with_service(settings, _ingest)

    try:
        snapshot = asyncio.run(_runner())
    except StorageWriteFailed as exc:
        console.print(f"[red]storage write failed, nothing recorded:[/] {exc}")
        sys.exit(4)
    except IngestionFailed as exc:
        console.print(f"[red]record {exc.record_id} marked failed:[/] {exc.reason}")
        sys.exit(5)
    console.print_json(data=snapshot, default=str)


def _cmd_list(args: argparse.Namespace, settings: Settings) -> None:
    async def _list(service: IngestService) -> list[dict[str, Any]]:
        records = await service.list_records(owner_id=args.owner)
        return [record_snapshot(record) for record in records]

    snapshots = asyncio.run(_with_service(settings, _list))

    table = Table(title=f"Records for {args.owner}")
    for column in ("id", "title", "status", "duration_seconds", "thumbnails", "created_at"):
        table.add_column(column)
    for item in snapshots:
        table.add_row(
            item["id"],
            item["title"],
            item["status"],
            f"{item['duration_seconds']:.2f}",
            str(len(item["thumbnail_locations"])),
            str(item["created_at"]),
        )
    console.print(table)


async def _with_service(settings: Settings, action):
    engine = create_engine(settings)
    try:
        await create_schema(engine)
        session_factory = create_session_factory(engine)
        async with session_factory() as session:
            service = IngestService(settings, get_storage(settings), session)
            return await action(service)
    finally:
        await engine.dispose()


def _existing_file(raw: str) -> Path:
    media_path = Path(raw).expanduser().resolve()
    if not media_path.is_file():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)
    return media_path


def _run_environment_check(settings: Settings) -> None:
    """Check for the presence of required external dependencies."""
    checks = {
        "ffmpeg": [settings.ffmpeg_binary, "-version"],
        "ffprobe": [settings.ffprobe_binary, "-version"],
    }
    results = {label: probe_binary(cmd) for label, cmd in checks.items()}

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg or set VIDCORE_FFMPEG_BINARY/VIDCORE_FFPROBE_BINARY.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
