from __future__ import annotations

import asyncio
import json
import subprocess
from pathlib import Path
from typing import Any, Dict

from vidcore.core.config import Settings
from vidcore.core.errors import NotFound, ProbeFailed
from vidcore.core.logging import get_logger
from vidcore.core.storage import Storage

from .ffprobe_parser import ProbeReport, parse_ffprobe_json


class FFprobeProber:
    """Runs ffprobe against stored media with a bounded timeout."""

    def __init__(self, storage: Storage, *, binary: str = "ffprobe", timeout_s: float = 30.0):
        self.storage = storage
        self.binary = binary
        self.timeout_s = timeout_s
        self.logger = get_logger(component="prober")

    @classmethod
    def from_settings(cls, settings: Settings, storage: Storage) -> "FFprobeProber":
        return cls(storage, binary=settings.ffprobe_binary, timeout_s=settings.probe_timeout_s)

    async def probe(self, location: str) -> ProbeReport:
        try:
            path = self.storage.path_for(location)
        except NotFound as exc:
            raise ProbeFailed("location_not_found", detail=location) from exc
        raw = await asyncio.to_thread(self._run_ffprobe, path)
        return parse_ffprobe_json(raw)

    async def probe_duration(self, location: str) -> float:
        report = await self.probe(location)
        return report.require_duration()

    def _run_ffprobe(self, target: Path) -> Dict[str, Any]:
        command = [
            self.binary,
            "-v",
            "error",
            "-show_format",
            "-show_streams",
            "-print_format",
            "json",
            str(target),
        ]
        self.logger.debug("ffprobe_run", command=command, timeout_s=self.timeout_s)
        try:
            proc = subprocess.run(
                command,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout_s,
            )
        except FileNotFoundError as exc:
            raise ProbeFailed("ffprobe_not_installed", detail=self.binary) from exc
        except subprocess.TimeoutExpired as exc:
            raise ProbeFailed("ffprobe_timeout", detail=f"{self.timeout_s}s") from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            raise ProbeFailed("ffprobe_failed", detail=stderr or f"exit {exc.returncode}") from exc

        try:
            payload = json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            raise ProbeFailed("ffprobe_output_invalid", detail=str(exc)) from exc
        if not isinstance(payload, dict):
            raise ProbeFailed("ffprobe_output_invalid", detail=type(payload).__name__)
        return payload


__all__ = ["FFprobeProber"]
