import asyncio
import shutil
import subprocess
from pathlib import Path

import jwt
import pytest
from fastapi.testclient import TestClient

from vidcore.core.config import get_settings
from vidcore.core.db import Base, create_engine, create_schema
from vidcore.main import create_app

JWT_SECRET = "test-secret"
JWT_ISSUER = "vidcore-test"
JWT_AUDIENCE = "vidcore"

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not installed",
)


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default vidcore environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return
    db_path = tmp_path / "vidcore_test.db"
    storage_root = tmp_path / "storage"

    monkeypatch.setenv("VIDCORE_ENV", "test")
    monkeypatch.setenv("VIDCORE_LOG_LEVEL", "debug")
    monkeypatch.setenv("VIDCORE_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("VIDCORE_STORAGE_ROOT", str(storage_root))
    monkeypatch.setenv("VIDCORE_JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("VIDCORE_JWT_ISSUER", JWT_ISSUER)
    monkeypatch.setenv("VIDCORE_JWT_AUDIENCE", JWT_AUDIENCE)
    monkeypatch.setenv("VIDCORE_PROBE_TIMEOUT_S", "10")
    monkeypatch.setenv("VIDCORE_EXTRACT_TIMEOUT_S", "10")

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    asyncio.run(create_schema(engine))

    yield settings

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


@pytest.fixture()
def settings(configure_environment):
    return configure_environment


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


def build_token(owner_id: str, *, scopes: list[str] | None = None) -> str:
    payload: dict[str, object] = {"sub": owner_id, "iss": JWT_ISSUER, "aud": JWT_AUDIENCE}
    if scopes:
        payload["scopes"] = scopes
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


@pytest.fixture()
def owner_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('owner-a')}"}


@pytest.fixture()
def other_owner_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('owner-b')}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('owner-admin', scopes=['admin'])}"}


def _generate_video(path: Path, seconds: float) -> Path:
    command = [
        "ffmpeg",
        "-f", "lavfi",
        "-i", "color=c=blue:s=128x72:r=30",
        "-t", str(seconds),
        "-pix_fmt", "yuv420p",
        str(path),
    ]
    subprocess.run(command, check=True, capture_output=True)
    return path


@pytest.fixture(scope="session")
def generated_video_file(tmp_path_factory) -> Path:
    """A 2-second MP4 produced with ffmpeg's lavfi colour source."""
    if shutil.which("ffmpeg") is None:
        pytest.skip("ffmpeg not installed")
    return _generate_video(tmp_path_factory.mktemp("data") / "test_video.mp4", 2)


@pytest.fixture(scope="session")
def short_video_file(tmp_path_factory) -> Path:
    """A clip shorter than the default one-second thumbnail offset."""
    if shutil.which("ffmpeg") is None:
        pytest.skip("ffmpeg not installed")
    return _generate_video(tmp_path_factory.mktemp("data") / "short_video.mp4", 0.4)
