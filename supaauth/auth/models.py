from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class AuthChangeEvent(str, Enum):
    """Auth state notifications emitted by the provider client."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class MessageType(str, Enum):
    DEFAULT = "default"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Message:
    """User-visible banner."""

    message: str
    type: MessageType = MessageType.DEFAULT

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "type": self.type.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        try:
            mtype = MessageType(str(data.get("type") or "default"))
        except ValueError:
            mtype = MessageType.DEFAULT
        return cls(message=str(data.get("message") or ""), type=mtype)


@dataclass(frozen=True)
class AuthPayload:
    """Credential pair submitted by the sign-up / sign-in forms."""

    email: str
    password: str

    def __repr__(self) -> str:
        return f"AuthPayload(email={self.email!r}, password='***')"


@dataclass(frozen=True)
class AuthUser:
    """User as described by the auth provider."""

    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    confirmed_at: Optional[str] = None
    last_sign_in_at: Optional[str] = None
    app_metadata: Dict[str, Any] = field(default_factory=dict)
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def provider(self) -> Optional[str]:
        p = self.app_metadata.get("provider")
        return str(p) if p else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "confirmed_at": self.confirmed_at,
            "last_sign_in_at": self.last_sign_in_at,
            "app_metadata": dict(self.app_metadata),
            "user_metadata": dict(self.user_metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthUser":
        if not isinstance(data, dict):
            raise ValueError("Invalid user payload")
        user_id = str(data.get("id") or "").strip()
        if not user_id:
            raise ValueError("User payload missing id")
        email = data.get("email")
        role = data.get("role")
        # GoTrue reports email confirmation under either key depending on version.
        confirmed_at = data.get("confirmed_at") or data.get("email_confirmed_at")
        last_sign_in_at = data.get("last_sign_in_at")
        app_metadata = data.get("app_metadata")
        user_metadata = data.get("user_metadata")
        return cls(
            id=user_id,
            email=str(email) if email else None,
            role=str(role) if role else None,
            confirmed_at=str(confirmed_at) if confirmed_at else None,
            last_sign_in_at=str(last_sign_in_at) if last_sign_in_at else None,
            app_metadata=app_metadata if isinstance(app_metadata, dict) else {},
            user_metadata=user_metadata if isinstance(user_metadata, dict) else {},
        )


@dataclass(frozen=True)
class AuthSession:
    """Provider-issued token bundle for a signed-in user."""

    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[int]
    user: Optional[AuthUser]
    token_type: str = "bearer"
    expires_in: Optional[int] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
            "user": self.user.to_dict() if self.user else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthSession":
        """Parse a token response (or a previously serialized session)."""
        if not isinstance(data, dict):
            raise ValueError("Invalid session payload")
        access_token = str(data.get("access_token") or "").strip()
        if not access_token:
            raise ValueError("Session payload missing access_token")

        expires_in = _as_int(data.get("expires_in"))
        expires_at = _as_int(data.get("expires_at"))
        if expires_at is None and expires_in is not None:
            expires_at = int(time.time()) + expires_in

        raw_user = data.get("user")
        user = AuthUser.from_dict(raw_user) if isinstance(raw_user, dict) and raw_user.get("id") else None
        refresh_token = data.get("refresh_token")
        return cls(
            access_token=access_token,
            refresh_token=str(refresh_token) if refresh_token else None,
            expires_at=expires_at,
            user=user,
            token_type=str(data.get("token_type") or "bearer"),
            expires_in=expires_in,
        )


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
