from __future__ import annotations

from typing import Iterator, Optional

from fastapi import Depends, HTTPException, Request

from supaauth.auth.config import load_auth_config
from supaauth.auth.context import AuthProvider
from supaauth.auth.gotrue import GoTrueClient, create_client
from supaauth.auth.models import AuthSession
from supaauth.auth.session import decode_session, session_cookie_name


def get_client() -> GoTrueClient:
    """Build a fresh provider client for this request."""
    cfg = load_auth_config()
    try:
        return create_client(cfg)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))


def current_session(request: Request) -> Optional[AuthSession]:
    """Session mirrored into the signed cookie, if present and valid."""
    cfg = load_auth_config()
    return decode_session(cfg, request.cookies.get(session_cookie_name(cfg)))


def get_auth_provider(
    client: GoTrueClient = Depends(get_client),
    session: Optional[AuthSession] = Depends(current_session),
) -> Iterator[AuthProvider]:
    client.restore_session(session)
    provider = AuthProvider(client, load_auth_config())
    try:
        yield provider
    finally:
        provider.close()
