from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings, get_settings


security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    owner_id: str
    scopes: tuple[str, ...] = ()


def _decode_token(token: str, settings: Settings) -> dict:
    # Tokens are minted by the identity service; this side only verifies them.
    try:
        payload = jwt.decode(
            token,
            settings.secrets.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"verify_aud": settings.jwt_audience is not None},
        )
    except jwt.PyJWTError as exc:  # pragma: no cover - library handles message
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from exc
    return payload


async def get_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_authorization")

    payload = _decode_token(credentials.credentials, settings)
    owner_id = payload.get("sub") or payload.get("user_id") or payload.get("id")
    if not owner_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="subject_required")

    scopes = tuple(payload.get("scopes") or [])
    context = AuthContext(owner_id=str(owner_id), scopes=scopes)
    request.state.auth = context
    return context


__all__ = ["AuthContext", "get_auth_context"]
