"""
Auth provider context.

Wraps a GoTrueClient for the lifetime of one request: forwards sign-up / sign-in /
sign-out calls, turns provider failures into user-visible messages, and follows the
client's auth-state notifications to keep a local copy of the user, queue the
`(event, session)` pairs for session sync, and pick where the browser goes next.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from supaauth.auth.config import AuthConfig
from supaauth.auth.gotrue import AuthApiError, GoTrueClient
from supaauth.auth.models import AuthChangeEvent, AuthPayload, AuthSession, AuthUser, Message, MessageType

logger = logging.getLogger(__name__)

SIGN_UP_SUCCESS = "Signup successful. Please check your inbox for a confirmation email!"
SIGN_IN_SUCCESS = "Log in successful. I'll redirect you once I'm done"


class AuthProvider:
    def __init__(self, client: GoTrueClient, cfg: AuthConfig):
        self.client = client
        self.cfg = cfg
        self.loading = False
        self.user: Optional[AuthUser] = client.user()
        self.messages: List[Message] = []
        self.events: List[Tuple[AuthChangeEvent, Optional[AuthSession]]] = []
        self.redirect_to: Optional[str] = None
        self._subscription = client.on_auth_state_change(self._on_auth_state_change)

    def close(self) -> None:
        self._subscription.unsubscribe()

    def handle_message(self, message: str, type: MessageType = MessageType.DEFAULT) -> None:
        self.messages.append(Message(message=message, type=type))

    def _on_auth_state_change(self, event: AuthChangeEvent, session: Optional[AuthSession]) -> None:
        if event == AuthChangeEvent.SIGNED_OUT:
            self.user = None
        elif session is not None:
            self.user = session.user
        self.events.append((event, session))
        self.redirect_to = self.cfg.home_route if self.user else self.cfg.auth_route
        logger.info("Auth event %s -> redirect %s", event.value, self.redirect_to)

    def _fail(self, action: str, e: AuthApiError) -> bool:
        logger.info("%s failed (status=%s): %s", action, e.status, e.message)
        self.handle_message(e.message or "Something went wrong", MessageType.ERROR)
        return False

    def sign_up(self, payload: AuthPayload) -> bool:
        try:
            self.loading = True
            self.client.sign_up(payload)
        except AuthApiError as e:
            return self._fail("Sign up", e)
        finally:
            self.loading = False
        self.handle_message(SIGN_UP_SUCCESS, MessageType.SUCCESS)
        return True

    def sign_in(self, payload: AuthPayload) -> bool:
        try:
            self.loading = True
            self.client.sign_in(payload)
        except AuthApiError as e:
            return self._fail("Sign in", e)
        finally:
            self.loading = False
        self.handle_message(SIGN_IN_SUCCESS, MessageType.SUCCESS)
        return True

    def sign_in_with_provider(self, provider: str, *, redirect_to: str, code_challenge: str) -> Optional[str]:
        """Return the provider's authorize URL, or None (with an error message) if not enabled."""
        p = (provider or "").strip().lower()
        if p not in self.cfg.oauth_providers:
            self.handle_message(f"Sign in with {provider} is not enabled", MessageType.ERROR)
            return None
        return self.client.sign_in_with_oauth(p, redirect_to=redirect_to, code_challenge=code_challenge)

    def complete_oauth(self, auth_code: str, code_verifier: str) -> bool:
        try:
            self.loading = True
            self.client.exchange_code_for_session(auth_code, code_verifier)
        except AuthApiError as e:
            return self._fail("OAuth sign in", e)
        finally:
            self.loading = False
        self.handle_message(SIGN_IN_SUCCESS, MessageType.SUCCESS)
        return True

    def refresh_session(self) -> bool:
        try:
            self.loading = True
            self.client.refresh_session()
        except AuthApiError as e:
            logger.info("Session refresh failed (status=%s): %s", e.status, e.message)
            if self.user is not None:
                # Provider unavailable: the session is kept but may be stale.
                self.handle_message(e.message or "Something went wrong", MessageType.ERROR)
            return False
        finally:
            self.loading = False
        return True

    def sign_out(self) -> bool:
        try:
            self.loading = True
            self.client.sign_out()
        except AuthApiError as e:
            return self._fail("Sign out", e)
        finally:
            self.loading = False
        return True
