"""
Flash messages: a banner that survives exactly one redirect.

Stored in its own signed cookie so the success message from a sign-in can be shown on
the page the browser lands on.
"""

from __future__ import annotations

import json
from typing import List, Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from supaauth.auth.config import AuthConfig
from supaauth.auth.models import Message

FLASH_COOKIE_NAME = "supaauth_flash"
FLASH_SALT = "supaauth-flash-v1"
FLASH_MAX_AGE_SECONDS = 60


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=FLASH_SALT)


def encode_flash(cfg: AuthConfig, messages: List[Message]) -> Optional[str]:
    s = _serializer(cfg)
    if s is None or not messages:
        return None
    return s.dumps(json.dumps([m.to_dict() for m in messages], separators=(",", ":")))


def decode_flash(cfg: AuthConfig, value: str | None) -> List[Message]:
    if not value:
        return []
    s = _serializer(cfg)
    if s is None:
        return []
    try:
        data = json.loads(s.loads(value, max_age=FLASH_MAX_AGE_SECONDS))
    except (BadSignature, BadTimeSignature, ValueError):
        return []
    if not isinstance(data, list):
        return []
    return [Message.from_dict(x) for x in data if isinstance(x, dict) and x.get("message")]


def flash_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return {
        "key": FLASH_COOKIE_NAME,
        "value": value,
        "max_age": FLASH_MAX_AGE_SECONDS,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_flash_cookie_kwargs(cfg: AuthConfig) -> dict:
    return {**flash_cookie_kwargs(cfg, ""), "max_age": 0}
