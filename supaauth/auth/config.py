from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

# Navigation targets, chosen by whether a user is present.
HOME_ROUTE = "/"
AUTH_ROUTE = "/auth"


@dataclass(frozen=True)
class AuthConfig:
    # Hosted auth provider (Supabase GoTrue)
    supabase_url: Optional[str]
    supabase_anon_key: Optional[str]
    request_timeout_seconds: float

    # Session configuration
    public_base_url: Optional[str]  # Required for OAuth redirects
    session_secret: Optional[str]  # Required for cookie signing
    session_ttl_seconds: int
    cookie_secure: bool

    # OAuth providers enabled on the Supabase project (e.g. github, google)
    oauth_providers: List[str]

    app_title: str

    @property
    def home_route(self) -> str:
        return HOME_ROUTE

    @property
    def auth_route(self) -> str:
        return AUTH_ROUTE

    @property
    def provider_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)


def _parse_csv(value: str) -> List[str]:
    items = [x.strip().lower() for x in (value or "").split(",")]
    return [x for x in items if x]


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    The provider is usable only when both SUPABASE_URL and SUPABASE_ANON_KEY are set.
    """
    public_base_url = (os.getenv("AUTH_PUBLIC_BASE_URL", "") or "").strip().rstrip("/") or None
    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when base URL is https; otherwise allow local dev.
        cookie_secure = True if (public_base_url or "").startswith("https://") else False

    ttl = int(float((os.getenv("AUTH_SESSION_TTL_SECONDS", "") or "43200").strip() or "43200"))  # 12h default
    if ttl <= 60:
        ttl = 60

    timeout = float((os.getenv("SUPABASE_TIMEOUT_SECONDS", "") or "10").strip() or "10")
    if timeout <= 0:
        timeout = 10.0

    return AuthConfig(
        supabase_url=(os.getenv("SUPABASE_URL", "") or "").strip().rstrip("/") or None,
        supabase_anon_key=(os.getenv("SUPABASE_ANON_KEY", "") or "").strip() or None,
        request_timeout_seconds=timeout,
        public_base_url=public_base_url,
        session_secret=(os.getenv("AUTH_SESSION_SECRET", "") or "").strip() or None,
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
        oauth_providers=_parse_csv(os.getenv("AUTH_OAUTH_PROVIDERS", "")),
        app_title=(os.getenv("APP_TITLE", "") or "SupaAuth").strip() or "SupaAuth",
    )
