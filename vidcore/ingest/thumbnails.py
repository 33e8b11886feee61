from __future__ import annotations

import asyncio
import subprocess
import tempfile
from pathlib import Path
from time import monotonic
from typing import List, Tuple

import cv2  # type: ignore

from vidcore.core.config import Settings
from vidcore.core.errors import ExtractionFailed, NotFound, StorageWriteFailed
from vidcore.core.logging import get_logger
from vidcore.core.storage import Storage

THUMB_WIDTH = 320
THUMB_NAMESPACE = "thumbs"


class FFmpegThumbnailExtractor:
    """Grabs one JPEG frame with ffmpeg and stores it next to the media.

    Media shorter than the requested offset is clamped: when the seek yields
    no frame, a second pass decodes the whole file and keeps its last frame.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        binary: str = "ffmpeg",
        timeout_s: float = 30.0,
        width: int = THUMB_WIDTH,
    ):
        self.storage = storage
        self.binary = binary
        self.timeout_s = timeout_s
        self.width = width
        self.logger = get_logger(component="thumbnail_extractor")

    @classmethod
    def from_settings(cls, settings: Settings, storage: Storage) -> "FFmpegThumbnailExtractor":
        return cls(
            storage,
            binary=settings.ffmpeg_binary,
            timeout_s=settings.extract_timeout_s,
            width=settings.thumbnail_width,
        )

    async def extract_thumbnail(self, location: str, offset_s: float = 1.0) -> str:
        try:
            source = self.storage.path_for(location)
        except NotFound as exc:
            raise ExtractionFailed("location_not_found", detail=location) from exc
        return await asyncio.to_thread(self._extract_and_store, source, offset_s)

    def _extract_and_store(self, source: Path, offset_s: float) -> str:
        with tempfile.TemporaryDirectory(prefix="vidcore-thumb-") as workdir:
            output_path = Path(workdir) / "frame.jpg"
            deadline = monotonic() + self.timeout_s
            try:
                self._run_ffmpeg(self._seek_command(source, offset_s, output_path), self.timeout_s)
            except ExtractionFailed as exc:
                # Some ffmpeg builds exit non-zero when a seek past the end encodes nothing.
                if exc.reason != "ffmpeg_failed":
                    raise
                output_path.unlink(missing_ok=True)
            if not _has_content(output_path):
                self.logger.info("thumbnail_offset_clamped", source=source.name, offset_s=offset_s)
                # Both passes share one timeout budget.
                remaining_s = deadline - monotonic()
                if remaining_s <= 0:
                    raise ExtractionFailed("ffmpeg_timeout", detail=f"{self.timeout_s}s")
                self._run_ffmpeg(self._last_frame_command(source, output_path), remaining_s)
            if not _has_content(output_path):
                raise ExtractionFailed("no_frame_decoded", detail=source.name)

            width, height = _image_dimensions(output_path)
            try:
                with output_path.open("rb") as handle:
                    thumb_location = self.storage.put(handle, f"{source.stem}.jpg", namespace=THUMB_NAMESPACE)
            except StorageWriteFailed as exc:
                raise ExtractionFailed("thumbnail_store_failed", detail=str(exc)) from exc

        self.logger.debug("thumbnail_stored", location=thumb_location, width_px=width, height_px=height)
        return thumb_location

    def _seek_command(self, source: Path, offset_s: float, output_path: Path) -> List[str]:
        return [
            self.binary,
            "-nostdin",
            "-v",
            "error",
            "-ss",
            f"{max(offset_s, 0.0):.3f}",
            "-i",
            str(source),
            "-frames:v",
            "1",
            "-vf",
            f"scale={self.width}:-2",
            "-q:v",
            "2",
            "-y",
            str(output_path),
        ]

    def _last_frame_command(self, source: Path, output_path: Path) -> List[str]:
        # -update 1 rewrites the same image for every decoded frame, leaving the last one.
        return [
            self.binary,
            "-nostdin",
            "-v",
            "error",
            "-i",
            str(source),
            "-vf",
            f"scale={self.width}:-2",
            "-q:v",
            "2",
            "-update",
            "1",
            "-y",
            str(output_path),
        ]

    def _run_ffmpeg(self, command: List[str], timeout_s: float) -> None:
        self.logger.debug("ffmpeg_run", command=command, timeout_s=timeout_s)
        try:
            subprocess.run(
                command,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout_s,
            )
        except FileNotFoundError as exc:
            raise ExtractionFailed("ffmpeg_not_installed", detail=self.binary) from exc
        except subprocess.TimeoutExpired as exc:
            raise ExtractionFailed("ffmpeg_timeout", detail=f"{timeout_s:.1f}s") from exc
        except subprocess.CalledProcessError as exc:
            stderr = exc.stderr.decode(errors="replace").strip() if exc.stderr else ""
            raise ExtractionFailed("ffmpeg_failed", detail=stderr or f"exit {exc.returncode}") from exc


def _has_content(path: Path) -> bool:
    return path.exists() and path.stat().st_size > 0


def _image_dimensions(image_path: Path) -> Tuple[int, int]:
    image = cv2.imread(str(image_path))
    if image is None:
        raise ExtractionFailed("thumbnail_unreadable", detail=image_path.name)
    height, width = image.shape[:2]
    return width, height


__all__ = ["FFmpegThumbnailExtractor", "THUMB_NAMESPACE", "THUMB_WIDTH"]
