from __future__ import annotations

import io
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from vidcore.core.config import get_settings
from vidcore.core.errors import NotFound, StorageWriteFailed
from vidcore.core.storage import LocalStorage, get_storage, sanitise_name


@pytest.fixture()
def storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(tmp_path / "store")


def test_default_backend_is_local_and_rooted_at_setting(settings):
    storage = get_storage(settings)
    assert isinstance(storage, LocalStorage)
    assert storage.base_path == Path(settings.storage_root).resolve()


def test_storage_root_comes_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("VIDCORE_STORAGE_ROOT", str(tmp_path / "elsewhere"))
    get_settings.cache_clear()
    storage = get_storage(get_settings())
    assert storage.base_path == (tmp_path / "elsewhere").resolve()
    assert storage.base_path.is_dir()


def test_put_get_round_trip(storage):
    payload = os.urandom(256 * 1024)
    location = storage.put(payload, "clip.mp4")
    assert storage.get(location) == payload
    assert storage.stat(location).size_bytes == len(payload)
    assert location.startswith("media/")
    assert location.endswith("-clip.mp4")


def test_put_streams_file_objects(storage):
    payload = b"x" * (3 * 1024 * 1024 + 17)
    location = storage.put(io.BytesIO(payload), "big.mov")
    assert storage.get(location) == payload


def test_namespace_is_part_of_location(storage):
    location = storage.put(b"jpeg", "frame.jpg", namespace="thumbs")
    assert location.startswith("thumbs/")
    assert storage.exists(location)


def test_same_suggested_name_concurrently_gets_distinct_locations(storage):
    payloads = [f"payload-{index}".encode() for index in range(16)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        locations = list(pool.map(lambda data: storage.put(data, "same.mp4"), payloads))

    assert len(set(locations)) == len(payloads)
    for location, data in zip(locations, payloads):
        assert storage.get(location) == data


def test_get_unknown_location_raises_not_found(storage):
    with pytest.raises(NotFound):
        storage.get("media/does-not-exist.mp4")
    assert storage.exists("media/does-not-exist.mp4") is False


@pytest.mark.parametrize("location", ["", "../outside.txt", "/etc/passwd", "media/../../outside.txt"])
def test_locations_outside_root_are_not_found(storage, location):
    with pytest.raises(NotFound):
        storage.get(location)


def test_directory_is_not_a_location(storage):
    storage.put(b"data", "a.bin")
    with pytest.raises(NotFound):
        storage.get("media")


def test_failed_write_leaves_nothing_behind(storage, monkeypatch):
    def _disk_full(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("vidcore.core.storage.os.replace", _disk_full)

    with pytest.raises(StorageWriteFailed):
        storage.put(b"partial", "clip.mp4")

    leftovers = [path for path in storage.base_path.rglob("*") if path.is_file()]
    assert leftovers == []


def test_failed_stream_read_leaves_nothing_behind(storage):
    class BrokenStream(io.RawIOBase):
        def __init__(self):
            self.calls = 0

        def read(self, size=-1):
            self.calls += 1
            if self.calls > 1:
                raise OSError("connection reset")
            return b"first-chunk"

    with pytest.raises(StorageWriteFailed):
        storage.put(BrokenStream(), "clip.mp4")

    assert [path for path in storage.base_path.rglob("*") if path.is_file()] == []


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("clip.mp4", "clip.mp4"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\holiday video.mov", "holiday_video.mov"),
        ("", "upload.bin"),
        ("...", "upload.bin"),
        ("été.mp4", "t_.mp4"),
    ],
)
def test_sanitise_name(raw, expected):
    assert sanitise_name(raw) == expected


def test_sanitise_name_bounds_length_and_keeps_suffix():
    name = sanitise_name("a" * 500 + ".mp4")
    assert len(name) <= 120
    assert name.endswith(".mp4")


def test_in_flight_write_is_not_addressable(storage, monkeypatch):
    seen = {}
    real_replace = os.replace

    def _observe(src, dst):
        staged = Path(src)
        seen["staged"] = staged.relative_to(storage.base_path).as_posix()
        seen["staged_bytes"] = staged.read_bytes()
        with pytest.raises(NotFound):
            storage.get(seen["staged"])
        assert storage.exists(seen["staged"]) is False
        real_replace(src, dst)

    monkeypatch.setattr("vidcore.core.storage.os.replace", _observe)

    location = storage.put(b"complete-payload", "clip.mp4")

    assert seen["staged"].startswith(".incoming/")
    assert seen["staged_bytes"] == b"complete-payload"
    assert not seen["staged"].startswith(location.split("/")[0])
    assert storage.get(location) == b"complete-payload"


@pytest.mark.parametrize("location", [".incoming/upload.part", "media/.hidden.part"])
def test_hidden_locations_are_not_found(storage, location):
    hidden = storage.base_path / location
    hidden.parent.mkdir(parents=True, exist_ok=True)
    hidden.write_bytes(b"partial")

    with pytest.raises(NotFound):
        storage.get(location)
    with pytest.raises(NotFound):
        storage.path_for(location)
