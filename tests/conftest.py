"""
Pytest config.

Pins the repo root on sys.path so `import supaauth` works without an install, and gives
every test a known auth configuration.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

SUPABASE_URL = "https://project.supabase.co"
ANON_KEY = "anon-key-for-tests"
SESSION_SECRET = "test-secret-key-for-testing-purposes-only"


@pytest.fixture(autouse=True)
def _auth_env(monkeypatch: pytest.MonkeyPatch):
    """Known provider + cookie config; config cache cleared around every test."""
    from supaauth.auth.config import load_auth_config

    for name in ("AUTH_COOKIE_SECURE", "AUTH_PUBLIC_BASE_URL", "AUTH_OAUTH_PROVIDERS", "AUTH_SESSION_TTL_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SUPABASE_URL", SUPABASE_URL)
    monkeypatch.setenv("SUPABASE_ANON_KEY", ANON_KEY)
    monkeypatch.setenv("AUTH_SESSION_SECRET", SESSION_SECRET)
    load_auth_config.cache_clear()
    yield
    load_auth_config.cache_clear()


def make_response(status_code: int = 200, body: Optional[Any] = None) -> MagicMock:
    """Fake `requests.Response` for patched `requests.request` calls."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.content = json.dumps(body).encode("utf-8") if body is not None else b""
    if body is None:
        resp.json.side_effect = ValueError("No JSON")
    else:
        resp.json.return_value = body
    return resp


def user_body(user_id: str = "user-123", email: str = "alice@example.com") -> Dict[str, Any]:
    return {
        "id": user_id,
        "aud": "authenticated",
        "role": "authenticated",
        "email": email,
        "email_confirmed_at": "2024-01-01T00:00:00Z",
        "last_sign_in_at": "2024-01-02T00:00:00Z",
        "app_metadata": {"provider": "email", "providers": ["email"]},
        "user_metadata": {},
    }


def session_body(access_token: str = "access-token-1", **user_kwargs: Any) -> Dict[str, Any]:
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": 3600,
        "refresh_token": "refresh-token-1",
        "user": user_body(**user_kwargs),
    }
