"""
End-to-end tests for the auth pages with the provider's HTTP API mocked.
"""

from __future__ import annotations

import time
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pytest
from conftest import SUPABASE_URL, make_response, session_body, user_body
from fastapi.testclient import TestClient

from supaauth.api.server import app
from supaauth.auth.config import load_auth_config
from supaauth.auth.context import SIGN_IN_SUCCESS, SIGN_UP_SUCCESS
from supaauth.auth.messages import FLASH_COOKIE_NAME, decode_flash, encode_flash
from supaauth.auth.models import AuthSession, Message, MessageType
from supaauth.auth.session import decode_session, encode_session
from supaauth.auth.util import pkce_challenge

SESSION_COOKIE = "supaauth_session"


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def _signed_in(client: TestClient, session: AuthSession | None = None) -> AuthSession:
    session = session or AuthSession.from_dict(session_body())
    client.cookies.set(SESSION_COOKIE, encode_session(load_auth_config(), session))
    return session


def _set_cookies(resp) -> list:
    return resp.headers.get_list("set-cookie")


def _cleared(resp, name: str) -> bool:
    return any(c.startswith(f"{name}=") and "Max-Age=0" in c for c in _set_cookies(resp))


def test_healthz(client) -> None:
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


# ---- pages ----


def test_auth_page_defaults_to_sign_in(client) -> None:
    resp = client.get("/auth")
    assert resp.status_code == 200
    assert "<title>SupaAuth - Sign In</title>" in resp.text
    assert 'action="/auth/sign-in"' in resp.text
    assert resp.headers["cache-control"] == "no-store"


def test_auth_page_sign_up_view(client) -> None:
    resp = client.get("/auth", params={"view": "sign_up"})
    assert "<title>SupaAuth - Sign Up</title>" in resp.text
    assert 'action="/auth/sign-up"' in resp.text
    assert "and sign up" in resp.text


def test_auth_page_unknown_view_falls_back(client) -> None:
    resp = client.get("/auth", params={"view": "admin"})
    assert resp.status_code == 200
    assert "<title>SupaAuth - Sign In</title>" in resp.text


def test_auth_page_redirects_signed_in_user_home(client) -> None:
    _signed_in(client)
    resp = client.get("/auth", follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/"


def test_home_requires_session(client) -> None:
    resp = client.get("/", follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/auth"


def test_home_shows_user_and_consumes_flash(client) -> None:
    _signed_in(client)
    client.cookies.set(FLASH_COOKIE_NAME, encode_flash(load_auth_config(), [Message("Welcome back", MessageType.SUCCESS)]))

    with patch("requests.request") as mock_request:
        resp = client.get("/")

    mock_request.assert_not_called()
    assert resp.status_code == 200
    assert "alice@example.com" in resp.text
    assert "user-123" in resp.text
    assert 'class="message message-success"' in resp.text
    assert "Welcome back" in resp.text
    assert _cleared(resp, FLASH_COOKIE_NAME)


def test_home_refreshes_expired_session(client) -> None:
    expired = AuthSession.from_dict({**session_body(), "expires_in": None, "expires_at": int(time.time()) - 10})
    _signed_in(client, expired)

    with patch("requests.request", return_value=make_response(200, session_body(access_token="fresh"))) as mock_request:
        resp = client.get("/")

    assert resp.status_code == 200
    _, kwargs = mock_request.call_args
    assert kwargs["params"] == {"grant_type": "refresh_token"}
    refreshed = decode_session(load_auth_config(), resp.cookies.get(SESSION_COOKIE))
    assert refreshed is not None and refreshed.access_token == "fresh"


def test_home_expired_session_rejected_signs_out(client) -> None:
    expired = AuthSession.from_dict({**session_body(), "expires_in": None, "expires_at": int(time.time()) - 10})
    _signed_in(client, expired)

    with patch("requests.request", return_value=make_response(400, {"error_description": "Invalid Refresh Token"})):
        resp = client.get("/", follow_redirects=False)

    assert resp.status_code == 302
    assert resp.headers["location"] == "/auth"
    assert _cleared(resp, SESSION_COOKIE)


# ---- sign up ----


def test_sign_up_submits_exact_inputs_and_shows_success(client) -> None:
    with patch("requests.request", return_value=make_response(200, user_body())) as mock_request:
        resp = client.post("/auth/sign-up", data={"email": "new@example.com", "password": "pa ss"})

    args, kwargs = mock_request.call_args
    assert args == ("POST", f"{SUPABASE_URL}/auth/v1/signup")
    assert kwargs["json"] == {"email": "new@example.com", "password": "pa ss"}

    assert resp.status_code == 200
    assert SIGN_UP_SUCCESS in resp.text
    assert 'class="message message-success"' in resp.text
    assert SESSION_COOKIE not in resp.cookies


def test_sign_up_failure_shows_provider_message(client) -> None:
    with patch("requests.request", return_value=make_response(400, {"msg": "User already registered"})):
        resp = client.post("/auth/sign-up", data={"email": "alice@example.com", "password": "s3cret"})

    assert resp.status_code == 400
    assert "User already registered" in resp.text
    assert 'class="message message-error"' in resp.text
    assert 'value="alice@example.com"' in resp.text


def test_sign_up_missing_fields_never_reaches_provider(client) -> None:
    with patch("requests.request") as mock_request:
        resp = client.post("/auth/sign-up", data={"email": "alice@example.com"})

    mock_request.assert_not_called()
    assert resp.status_code == 400
    assert "Please provide your email and password" in resp.text


def test_sign_up_autoconfirmed_project_signs_in(client) -> None:
    with patch("requests.request", return_value=make_response(200, session_body())):
        resp = client.post(
            "/auth/sign-up", data={"email": "alice@example.com", "password": "s3cret"}, follow_redirects=False
        )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/"
    assert decode_session(load_auth_config(), resp.cookies.get(SESSION_COOKIE)) is not None


# ---- sign in ----


def test_sign_in_success_sets_session_and_redirects_home(client) -> None:
    with patch("requests.request", return_value=make_response(200, session_body())) as mock_request:
        resp = client.post(
            "/auth/sign-in", data={"email": "alice@example.com", "password": "s3cret"}, follow_redirects=False
        )

    _, kwargs = mock_request.call_args
    assert kwargs["params"] == {"grant_type": "password"}
    assert kwargs["json"] == {"email": "alice@example.com", "password": "s3cret"}

    assert resp.status_code == 303
    assert resp.headers["location"] == "/"
    cfg = load_auth_config()
    session = decode_session(cfg, resp.cookies.get(SESSION_COOKIE))
    assert session is not None and session.user is not None and session.user.id == "user-123"
    assert decode_flash(cfg, resp.cookies.get(FLASH_COOKIE_NAME)) == [Message(SIGN_IN_SUCCESS, MessageType.SUCCESS)]


def test_sign_in_failure_shows_provider_message(client) -> None:
    body = {"error": "invalid_grant", "error_description": "Invalid login credentials"}
    with patch("requests.request", return_value=make_response(400, body)):
        resp = client.post("/auth/sign-in", data={"email": "alice@example.com", "password": "nope"})

    assert resp.status_code == 400
    assert "Invalid login credentials" in resp.text
    assert SESSION_COOKIE not in resp.cookies


def test_sign_in_provider_unreachable(client) -> None:
    import requests

    with patch("requests.request", side_effect=requests.Timeout("slow")):
        resp = client.post("/auth/sign-in", data={"email": "alice@example.com", "password": "s3cret"})

    assert resp.status_code == 400
    assert "Unable to reach the authentication service" in resp.text


def test_sign_in_without_provider_config_is_unavailable(client, monkeypatch) -> None:
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    load_auth_config.cache_clear()
    resp = client.post("/auth/sign-in", data={"email": "alice@example.com", "password": "s3cret"})
    assert resp.status_code == 503


# ---- sign out ----


def test_sign_out_clears_session_and_redirects_to_auth(client) -> None:
    _signed_in(client, AuthSession.from_dict(session_body(access_token="tok")))
    with patch("requests.request", return_value=make_response(204)) as mock_request:
        resp = client.post("/auth/sign-out", follow_redirects=False)

    args, kwargs = mock_request.call_args
    assert args == ("POST", f"{SUPABASE_URL}/auth/v1/logout")
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert resp.status_code == 303
    assert resp.headers["location"] == "/auth"
    assert _cleared(resp, SESSION_COOKIE)


def test_sign_out_failure_returns_home_with_error(client) -> None:
    _signed_in(client)
    with patch("requests.request", return_value=make_response(500, {"msg": "database error"})):
        resp = client.post("/auth/sign-out", follow_redirects=False)

    assert resp.status_code == 303
    assert resp.headers["location"] == "/"
    assert not _cleared(resp, SESSION_COOKIE)
    flash = decode_flash(load_auth_config(), resp.cookies.get(FLASH_COOKIE_NAME))
    assert flash == [Message("database error", MessageType.ERROR)]


# ---- OAuth ----


@pytest.fixture
def oauth_env(monkeypatch):
    monkeypatch.setenv("AUTH_OAUTH_PROVIDERS", "github")
    monkeypatch.setenv("AUTH_PUBLIC_BASE_URL", "http://localhost:8080")
    load_auth_config.cache_clear()


def test_oauth_start_redirects_to_provider_with_pkce(client, oauth_env) -> None:
    resp = client.get("/auth/sign-in/github", follow_redirects=False)

    assert resp.status_code == 302
    location = urlparse(resp.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == f"{SUPABASE_URL}/auth/v1/authorize"
    qs = parse_qs(location.query)
    assert qs["provider"] == ["github"]
    assert qs["redirect_to"] == ["http://localhost:8080/auth/callback"]

    verifier = resp.cookies.get("supaauth_pkce_verifier")
    assert verifier
    assert qs["code_challenge"] == [pkce_challenge(verifier)]


def test_oauth_start_unknown_provider(client, oauth_env) -> None:
    resp = client.get("/auth/sign-in/gitlab", follow_redirects=False)
    assert resp.status_code == 404


def test_oauth_start_requires_public_base_url(client, monkeypatch) -> None:
    monkeypatch.setenv("AUTH_OAUTH_PROVIDERS", "github")
    load_auth_config.cache_clear()
    resp = client.get("/auth/sign-in/github", follow_redirects=False)
    assert resp.status_code == 500


def test_oauth_callback_exchanges_code(client, oauth_env) -> None:
    client.cookies.set("supaauth_pkce_verifier", "the-verifier")
    with patch("requests.request", return_value=make_response(200, session_body())) as mock_request:
        resp = client.get("/auth/callback", params={"code": "the-code"}, follow_redirects=False)

    _, kwargs = mock_request.call_args
    assert kwargs["params"] == {"grant_type": "pkce"}
    assert kwargs["json"] == {"auth_code": "the-code", "code_verifier": "the-verifier"}
    assert resp.status_code == 303
    assert resp.headers["location"] == "/"
    assert decode_session(load_auth_config(), resp.cookies.get(SESSION_COOKIE)) is not None
    assert _cleared(resp, "supaauth_pkce_verifier")


def test_oauth_callback_provider_error(client, oauth_env) -> None:
    with patch("requests.request") as mock_request:
        resp = client.get("/auth/callback", params={"error_description": "Email not confirmed"})

    mock_request.assert_not_called()
    assert resp.status_code == 400
    assert "Email not confirmed" in resp.text


def test_oauth_callback_without_verifier(client, oauth_env) -> None:
    resp = client.get("/auth/callback", params={"code": "the-code"})
    assert resp.status_code == 400
    assert "Sign in link is invalid or has expired" in resp.text


# ---- session sync API ----


def test_sync_signed_in_verifies_token_and_sets_cookie(client) -> None:
    body = session_body(access_token="browser-token")
    with patch("requests.request", return_value=make_response(200, user_body(user_id="user-777"))) as mock_request:
        resp = client.post("/api/auth", json={"event": "SIGNED_IN", "session": body})

    args, kwargs = mock_request.call_args
    assert args == ("GET", f"{SUPABASE_URL}/auth/v1/user")
    assert kwargs["headers"]["Authorization"] == "Bearer browser-token"

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "event": "SIGNED_IN"}
    session = decode_session(load_auth_config(), resp.cookies.get(SESSION_COOKIE))
    assert session is not None and session.user is not None and session.user.id == "user-777"


def test_sync_rejects_unverified_token(client) -> None:
    with patch("requests.request", return_value=make_response(401, {"msg": "invalid JWT"})):
        resp = client.post("/api/auth", json={"event": "SIGNED_IN", "session": session_body()})
    assert resp.status_code == 401
    assert SESSION_COOKIE not in resp.cookies


def test_sync_signed_out_clears_cookie(client) -> None:
    _signed_in(client)
    with patch("requests.request") as mock_request:
        resp = client.post("/api/auth", json={"event": "SIGNED_OUT", "session": None})

    mock_request.assert_not_called()
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "event": "SIGNED_OUT"}
    assert _cleared(resp, SESSION_COOKIE)


def test_sync_session_event_requires_session(client) -> None:
    resp = client.post("/api/auth", json={"event": "SIGNED_IN"})
    assert resp.status_code == 400


def test_sync_malformed_session(client) -> None:
    resp = client.post("/api/auth", json={"event": "TOKEN_REFRESHED", "session": {"refresh_token": "r"}})
    assert resp.status_code == 400


def test_sync_unknown_event(client) -> None:
    resp = client.post("/api/auth", json={"event": "SIGNED_SIDEWAYS", "session": None})
    assert resp.status_code == 422


def test_current_user_api(client) -> None:
    resp = client.get("/api/auth/user")
    assert resp.status_code == 401
    assert "www-authenticate" not in resp.headers

    _signed_in(client)
    resp = client.get("/api/auth/user")
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert data["user"]["email"] == "alice@example.com"
    assert resp.headers["cache-control"] == "no-store"


def test_sync_huge_expiry_is_not_a_server_error(client) -> None:
    with patch("requests.request", return_value=make_response(200, user_body())):
        resp = client.post(
            "/api/auth",
            content='{"event": "SIGNED_IN", "session": {"access_token": "tok", "expires_at": 1e400}}',
            headers={"content-type": "application/json"},
        )
    assert resp.status_code == 200
    session = decode_session(load_auth_config(), resp.cookies.get(SESSION_COOKIE))
    assert session is not None and session.access_token == "tok"
    assert session.expires_at is None


def test_home_refresh_unavailable_shows_error_banner(client) -> None:
    expired = AuthSession.from_dict({**session_body(), "expires_in": None, "expires_at": int(time.time()) - 10})
    _signed_in(client, expired)

    with patch("requests.request", return_value=make_response(503, {"msg": "Service Unavailable"})):
        resp = client.get("/", follow_redirects=False)

    assert resp.status_code == 200
    assert 'class="message message-error"' in resp.text
    assert "Service Unavailable" in resp.text
    assert not _cleared(resp, SESSION_COOKIE)
