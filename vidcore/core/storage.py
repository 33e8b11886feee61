from __future__ import annotations

import os
import re
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import BinaryIO
from uuid import uuid4

from .config import Settings
from .errors import NotFound, StorageWriteFailed
from .logging import get_logger

CHUNK_SIZE = 1024 * 1024
MAX_NAME_LENGTH = 120
INCOMING_DIR = ".incoming"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(slots=True)
class StorageStat:
    size_bytes: int


class Storage(ABC):
    """Durable byte store addressed by opaque locations."""

    @abstractmethod
    def put(self, payload: bytes | BinaryIO, suggested_name: str, *, namespace: str = "media") -> str: ...

    @abstractmethod
    def get(self, location: str) -> bytes: ...

    @abstractmethod
    def exists(self, location: str) -> bool: ...

    @abstractmethod
    def stat(self, location: str) -> StorageStat: ...

    @abstractmethod
    def path_for(self, location: str) -> Path: ...


def sanitise_name(suggested_name: str) -> str:
    """Reduce a client-supplied filename to a safe, bounded basename."""
    name = PurePosixPath(suggested_name.replace("\\", "/")).name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    if not name:
        return "upload.bin"
    if len(name) > MAX_NAME_LENGTH:
        stem, dot, suffix = name.rpartition(".")
        if dot and len(suffix) < 16:
            name = f"{stem[: MAX_NAME_LENGTH - len(suffix) - 1]}.{suffix}"
        else:
            name = name[:MAX_NAME_LENGTH]
    return name


def allocate_location(suggested_name: str, namespace: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return f"{namespace}/{stamp}-{uuid4().hex}-{sanitise_name(suggested_name)}"


class LocalStorage(Storage):
    """Filesystem-backed storage rooted at an explicit directory."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.incoming_path = self.base_path / INCOMING_DIR
        self.logger = get_logger(component="local_storage")

    def _resolve(self, location: str) -> Path:
        if not location or location.startswith("/"):
            raise NotFound(location)
        # Hidden components cover in-flight writes under .incoming/.
        if any(part.startswith(".") for part in PurePosixPath(location).parts):
            raise NotFound(location)
        path = (self.base_path / location).resolve()
        if path != self.base_path and self.base_path not in path.parents:
            raise NotFound(location)
        return path

    def put(self, payload: bytes | BinaryIO, suggested_name: str, *, namespace: str = "media") -> str:
        location = allocate_location(suggested_name, namespace)
        target = self._resolve(location)
        while target.exists():
            location = allocate_location(suggested_name, namespace)
            target = self._resolve(location)

        tmp_path: Path | None = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            self.incoming_path.mkdir(exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=self.incoming_path, suffix=".part", delete=False) as tmp:
                tmp_path = Path(tmp.name)
                if isinstance(payload, (bytes, bytearray, memoryview)):
                    tmp.write(payload)
                else:
                    while chunk := payload.read(CHUNK_SIZE):
                        tmp.write(chunk)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, target)
        except OSError as exc:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            self.logger.error("storage_write_failed", location=location, error=str(exc))
            raise StorageWriteFailed(f"could not write {location}: {exc}") from exc

        self.logger.debug("storage_write_completed", location=location)
        return location

    def get(self, location: str) -> bytes:
        return self.path_for(location).read_bytes()

    def exists(self, location: str) -> bool:
        try:
            return self._resolve(location).is_file()
        except NotFound:
            return False

    def stat(self, location: str) -> StorageStat:
        return StorageStat(size_bytes=self.path_for(location).stat().st_size)

    def path_for(self, location: str) -> Path:
        path = self._resolve(location)
        if not path.is_file():
            raise NotFound(location)
        return path


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(base_path=Path(settings.storage_root))
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "StorageStat",
    "allocate_location",
    "sanitise_name",
    "get_storage",
]
