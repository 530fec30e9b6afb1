"""
Supabase GoTrue client.

Thin wrapper over the GoTrue REST API (`{SUPABASE_URL}/auth/v1`) that mirrors the
surface of the official JS client: sign up, sign in (password or OAuth/PKCE),
sign out, current user, and auth-state-change notifications.

Raw REST calls via ``requests``; the client keeps at most one session in memory and
is meant to be created per request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import requests

from supaauth.auth.config import AuthConfig
from supaauth.auth.models import AuthChangeEvent, AuthPayload, AuthSession, AuthUser

logger = logging.getLogger(__name__)

AuthStateCallback = Callable[[AuthChangeEvent, Optional[AuthSession]], None]

# Logout responses that mean "the provider no longer knows this session".
_SIGNED_OUT_STATUSES = (401, 403, 404)


class AuthApiError(Exception):
    """Error returned by (or while reaching) the auth provider."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass(frozen=True)
class AuthResponse:
    user: Optional[AuthUser]
    session: Optional[AuthSession]


class Subscription:
    """Handle returned by `on_auth_state_change`."""

    def __init__(self, client: "GoTrueClient", callback: AuthStateCallback):
        self._client = client
        self.callback = callback

    def unsubscribe(self) -> None:
        self._client._remove_listener(self)


def _error_message(body: Any, status: int) -> str:
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            v = body.get(key)
            if isinstance(v, str) and v.strip():
                return v.strip()
    return f"HTTP {status}"


class GoTrueClient:
    def __init__(self, url: str, anon_key: str, *, timeout: float = 10.0):
        if not url or not anon_key:
            raise ValueError("GoTrue URL and anon key are required")
        self.url = url.rstrip("/")
        self.auth_url = f"{self.url}/auth/v1"
        self.anon_key = anon_key
        self.timeout = timeout
        self._session: Optional[AuthSession] = None
        self._listeners: List[Subscription] = []

    # ---- notifications ----

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        sub = Subscription(self, callback)
        self._listeners.append(sub)
        return sub

    def _remove_listener(self, sub: Subscription) -> None:
        if sub in self._listeners:
            self._listeners.remove(sub)

    def _notify(self, event: AuthChangeEvent, session: Optional[AuthSession]) -> None:
        logger.debug("Auth state change: %s (listeners=%d)", event.value, len(self._listeners))
        # Listeners may unsubscribe while being notified.
        for sub in list(self._listeners):
            sub.callback(event, session)

    # ---- HTTP ----

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
    ) -> Any:
        url = f"{self.auth_url}{path}"
        try:
            r = requests.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(access_token),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Auth provider unreachable: %s %s (%s)", method, path, type(e).__name__)
            raise AuthApiError("Unable to reach the authentication service") from e

        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = None
            message = _error_message(body, r.status_code)
            logger.info("Auth provider error: %s %s -> %d (%s)", method, path, r.status_code, message)
            raise AuthApiError(message, status=r.status_code)

        if r.status_code == 204 or not r.content:
            return {}
        try:
            return r.json()
        except ValueError as e:
            raise AuthApiError("Invalid response from the authentication service", status=r.status_code) from e

    def _save_session(self, data: Any, event: AuthChangeEvent) -> AuthSession:
        try:
            session = AuthSession.from_dict(data)
        except ValueError as e:
            raise AuthApiError("Invalid session response from the authentication service") from e
        self._session = session
        self._notify(event, session)
        return session

    # ---- auth operations ----

    def sign_up(self, payload: AuthPayload, *, redirect_to: Optional[str] = None) -> AuthResponse:
        """
        Register a new user.

        When the project requires email confirmation, the provider returns only the user;
        otherwise it returns a full session and the client signs the user in.
        """
        params = {"redirect_to": redirect_to} if redirect_to else None
        data = self._request(
            "POST", "/signup", params=params, json={"email": payload.email, "password": payload.password}
        )
        if isinstance(data, dict) and data.get("access_token"):
            session = self._save_session(data, AuthChangeEvent.SIGNED_IN)
            return AuthResponse(user=session.user, session=session)
        user = AuthUser.from_dict(data) if isinstance(data, dict) and data.get("id") else None
        return AuthResponse(user=user, session=None)

    def sign_in(self, payload: AuthPayload) -> AuthSession:
        data = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": payload.email, "password": payload.password},
        )
        return self._save_session(data, AuthChangeEvent.SIGNED_IN)

    def sign_in_with_oauth(self, provider: str, *, redirect_to: str, code_challenge: str) -> str:
        """Build the provider authorize URL for a PKCE OAuth flow."""
        p = (provider or "").strip().lower()
        if not p:
            raise ValueError("OAuth provider is required")
        params = {
            "provider": p,
            "redirect_to": redirect_to,
            "code_challenge": code_challenge,
            "code_challenge_method": "s256",
        }
        return f"{self.auth_url}/authorize?{urlencode(params)}"

    def exchange_code_for_session(self, auth_code: str, code_verifier: str) -> AuthSession:
        data = self._request(
            "POST",
            "/token",
            params={"grant_type": "pkce"},
            json={"auth_code": auth_code, "code_verifier": code_verifier},
        )
        return self._save_session(data, AuthChangeEvent.SIGNED_IN)

    def refresh_session(self, refresh_token: Optional[str] = None) -> AuthSession:
        token = refresh_token or (self._session.refresh_token if self._session else None)
        if not token:
            raise AuthApiError("Auth session missing!")
        try:
            data = self._request(
                "POST", "/token", params={"grant_type": "refresh_token"}, json={"refresh_token": token}
            )
        except AuthApiError as e:
            # A rejected refresh token will never succeed; drop the session like a sign out.
            if e.status is not None and 400 <= e.status < 500:
                self._session = None
                self._notify(AuthChangeEvent.SIGNED_OUT, None)
            raise
        return self._save_session(data, AuthChangeEvent.TOKEN_REFRESHED)

    def sign_out(self) -> None:
        session = self._session
        if session is not None:
            try:
                self._request("POST", "/logout", access_token=session.access_token)
            except AuthApiError as e:
                if e.status not in _SIGNED_OUT_STATUSES:
                    raise
        self._session = None
        self._notify(AuthChangeEvent.SIGNED_OUT, None)

    def get_user(self, access_token: Optional[str] = None) -> AuthUser:
        """Ask the provider who owns `access_token` (defaults to the current session)."""
        token = access_token or (self._session.access_token if self._session else None)
        if not token:
            raise AuthApiError("Auth session missing!")
        data = self._request("GET", "/user", access_token=token)
        try:
            return AuthUser.from_dict(data)
        except ValueError as e:
            raise AuthApiError("Invalid user response from the authentication service") from e

    def restore_session(self, session: Optional[AuthSession]) -> None:
        """Adopt a previously issued session without emitting a notification."""
        self._session = session

    def session(self) -> Optional[AuthSession]:
        return self._session

    def user(self) -> Optional[AuthUser]:
        return self._session.user if self._session else None


def create_client(cfg: AuthConfig) -> GoTrueClient:
    if not cfg.provider_configured:
        raise ValueError("Auth provider not configured (SUPABASE_URL / SUPABASE_ANON_KEY)")
    return GoTrueClient(cfg.supabase_url or "", cfg.supabase_anon_key or "", timeout=cfg.request_timeout_seconds)
