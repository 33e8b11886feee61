from __future__ import annotations

import subprocess

from fastapi import APIRouter, Depends, HTTPException, status

from vidcore.api.deps import AuthDependency, get_app_settings
from vidcore.core.config import Settings

from .schemas import EnvCheckResponse


router = APIRouter(prefix="/admin", tags=["admin"])


def probe_binary(command: list[str]) -> bool:
    try:
        subprocess.run(command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True, timeout=10)
        return True
    except (OSError, subprocess.SubprocessError):
        return False


@router.get("/env-check", response_model=EnvCheckResponse, summary="Validate ffmpeg toolchain")
async def env_check(context: AuthDependency, settings: Settings = Depends(get_app_settings)) -> EnvCheckResponse:
    if "admin" not in context.scopes:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin_scope_required")

    return EnvCheckResponse(
        ffmpeg=probe_binary([settings.ffmpeg_binary, "-version"]),
        ffprobe=probe_binary([settings.ffprobe_binary, "-version"]),
    )


__all__ = ["router", "probe_binary"]
