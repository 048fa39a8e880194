"""Middleware: API key authentication for HTTP routes and the search WebSocket."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, WebSocket, WebSocketException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from animalid.config import Settings

_bearer_scheme = HTTPBearer(auto_error=False)


def _key_matches(candidate: str | None, settings: Settings) -> bool:
    if settings.api_key is None:
        return True
    if candidate is None:
        return False
    return secrets.compare_digest(candidate.encode(), settings.api_key.encode())


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    If no API key is configured (ANIMALID_API_KEY not set), all requests pass.
    If configured, requests must include 'Authorization: Bearer <key>'.
    """
    settings: Settings = request.app.state.settings
    token = credentials.credentials if credentials is not None else None
    if not _key_matches(token, settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def verify_websocket_api_key(websocket: WebSocket, token: str | None = None) -> None:
    """Browsers cannot set headers on WebSockets, so the key comes as ``?token=``."""
    settings: Settings = websocket.app.state.settings
    if not _key_matches(token, settings):
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid or missing API key")
