"""
Session sync: mirror provider auth state into the server-readable session cookie.

Used in-process by the page routes (via AuthProvider.events) and over HTTP by
`POST /api/auth`, which accepts the `{event, session}` pair a browser-side client
receives from its own auth-state-change listener.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel
from starlette.responses import Response

from supaauth.auth.config import AuthConfig
from supaauth.auth.models import AuthChangeEvent, AuthSession
from supaauth.auth.session import clear_session_cookie_kwargs, encode_session, session_cookie_kwargs

logger = logging.getLogger(__name__)

_SESSION_EVENTS = (AuthChangeEvent.SIGNED_IN, AuthChangeEvent.TOKEN_REFRESHED, AuthChangeEvent.USER_UPDATED)


class SessionSyncRequest(BaseModel):
    event: AuthChangeEvent
    session: Optional[Dict[str, Any]] = None


def apply_auth_event(
    cfg: AuthConfig,
    response: Response,
    event: AuthChangeEvent,
    session: Optional[AuthSession],
) -> None:
    """
    Set or clear the session cookie on `response` for one auth event.

    Raises:
        ValueError: a session event without a session, or cookie signing not configured
    """
    if event == AuthChangeEvent.SIGNED_OUT:
        response.set_cookie(**clear_session_cookie_kwargs(cfg))
        logger.debug("Session sync: cleared session cookie")
        return

    if event not in _SESSION_EVENTS:
        # Nothing to mirror (e.g. PASSWORD_RECOVERY).
        return

    if session is None:
        raise ValueError(f"{event.value} requires a session")
    value = encode_session(cfg, session)
    if not value:
        raise ValueError("Session signing is not configured (AUTH_SESSION_SECRET)")
    response.set_cookie(**session_cookie_kwargs(cfg, value))
    logger.debug("Session sync: %s for user %s", event.value, session.user.id if session.user else "unknown")
