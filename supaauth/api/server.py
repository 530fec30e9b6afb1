"""
SupaAuth web server.

Server-rendered sign-up / sign-in pages backed by Supabase Auth. Form posts are
forwarded to the provider through a per-request AuthProvider; provider auth-state
notifications are mirrored into a signed session cookie and decide the redirect.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Form, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.responses import Response

from supaauth.auth.config import AUTH_ROUTE, HOME_ROUTE, AuthConfig, load_auth_config
from supaauth.auth.context import AuthProvider
from supaauth.auth.deps import current_session, get_auth_provider, get_client
from supaauth.auth.forms import FormError, form_values, parse_auth_form
from supaauth.auth.gotrue import AuthApiError, GoTrueClient
from supaauth.auth.messages import (
    FLASH_COOKIE_NAME,
    clear_flash_cookie_kwargs,
    decode_flash,
    encode_flash,
    flash_cookie_kwargs,
)
from supaauth.auth.models import AuthChangeEvent, AuthSession, Message, MessageType
from supaauth.auth.sync import SessionSyncRequest, apply_auth_event
from supaauth.auth.util import pkce_challenge, random_token

logger = logging.getLogger(__name__)

app = FastAPI(title="SupaAuth")
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parents[1] / "templates"))

_VIEWS = {"sign_in": "Sign In", "sign_up": "Sign Up"}

# PKCE verifier lives only for the OAuth round-trip and only under the auth routes.
_PKCE_COOKIE = "supaauth_pkce_verifier"
_PKCE_TTL_SECONDS = 10 * 60


def _pkce_cookie_kwargs(cfg: AuthConfig, *, value: str, max_age: int) -> dict:
    return {
        "key": _PKCE_COOKIE,
        "value": value,
        "max_age": max_age,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": AUTH_ROUTE,
    }


def _public_base_url(cfg: AuthConfig) -> str:
    base = (cfg.public_base_url or "").strip().rstrip("/")
    if not base:
        raise HTTPException(status_code=500, detail="AUTH_PUBLIC_BASE_URL is required for OAuth")
    return base


def _no_store(resp: Response) -> Response:
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _redirect(url: str, status_code: int = 303) -> Response:
    return _no_store(RedirectResponse(url=url, status_code=status_code))


def _take_flash(request: Request, cfg: AuthConfig) -> List[Message]:
    return decode_flash(cfg, request.cookies.get(FLASH_COOKIE_NAME))


def _render(
    request: Request,
    cfg: AuthConfig,
    template: str,
    *,
    title: str,
    messages: List[Message],
    status_code: int = 200,
    **context: Any,
) -> Response:
    ctx: Dict[str, Any] = {
        "app_title": cfg.app_title,
        "title": f"{cfg.app_title} - {title}",
        "messages": messages,
        "home_route": HOME_ROUTE,
        "auth_route": AUTH_ROUTE,
        **context,
    }
    resp = templates.TemplateResponse(request, template, ctx, status_code=status_code)
    if request.cookies.get(FLASH_COOKIE_NAME):
        resp.set_cookie(**clear_flash_cookie_kwargs(cfg))
    return _no_store(resp)


def _render_auth(
    request: Request,
    cfg: AuthConfig,
    *,
    view: str,
    messages: List[Message],
    email: str = "",
    status_code: int = 200,
) -> Response:
    return _render(
        request,
        cfg,
        "auth.html",
        title=_VIEWS.get(view, _VIEWS["sign_in"]),
        messages=messages,
        status_code=status_code,
        view=view,
        email=email,
        oauth_providers=cfg.oauth_providers,
    )


def _finish(cfg: AuthConfig, provider: AuthProvider, resp: Response) -> Response:
    """Mirror the auth events this request produced into the session cookie."""
    for event, session in provider.events:
        try:
            apply_auth_event(cfg, resp, event, session)
        except ValueError as e:
            raise HTTPException(status_code=500, detail=str(e))
    return resp


def _follow(cfg: AuthConfig, provider: AuthProvider, fallback: str) -> Response:
    """Redirect where the last auth event points, carrying this request's messages."""
    resp = _redirect(provider.redirect_to or fallback)
    flash = encode_flash(cfg, provider.messages)
    if flash:
        resp.set_cookie(**flash_cookie_kwargs(cfg, flash))
    return _finish(cfg, provider, resp)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.get(HOME_ROUTE, response_class=HTMLResponse)
def home_page(request: Request, provider: AuthProvider = Depends(get_auth_provider)) -> Response:
    cfg = load_auth_config()
    session = provider.client.session()
    if session is not None and session.is_expired():
        provider.refresh_session()

    if provider.user is None:
        return _finish(cfg, provider, _redirect(AUTH_ROUTE, status_code=302))

    messages = _take_flash(request, cfg) + provider.messages
    resp = _render(request, cfg, "home.html", title="Home", messages=messages, user=provider.user)
    return _finish(cfg, provider, resp)


@app.get(AUTH_ROUTE, response_class=HTMLResponse)
def auth_page(
    request: Request,
    view: str = Query("sign_in"),
    session: Optional[AuthSession] = Depends(current_session),
) -> Response:
    cfg = load_auth_config()
    if session is not None and session.user is not None:
        return _redirect(HOME_ROUTE, status_code=302)
    if view not in _VIEWS:
        view = "sign_in"
    return _render_auth(request, cfg, view=view, messages=_take_flash(request, cfg))


@app.post(f"{AUTH_ROUTE}/sign-up", response_class=HTMLResponse)
def sign_up(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    provider: AuthProvider = Depends(get_auth_provider),
) -> Response:
    cfg = load_auth_config()
    values = form_values({"email": email, "password": password})
    try:
        payload = parse_auth_form(values)
    except FormError as e:
        provider.handle_message(str(e), MessageType.ERROR)
        return _render_auth(
            request, cfg, view="sign_up", messages=provider.messages, email=values["email"], status_code=400
        )

    ok = provider.sign_up(payload)
    if ok and provider.events:
        # Project auto-confirms sign-ups: the provider signed the user in directly.
        return _follow(cfg, provider, HOME_ROUTE)

    resp = _render_auth(
        request,
        cfg,
        view="sign_up",
        messages=provider.messages,
        email=values["email"],
        status_code=200 if ok else 400,
    )
    return _finish(cfg, provider, resp)


@app.post(f"{AUTH_ROUTE}/sign-in", response_class=HTMLResponse)
def sign_in(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    provider: AuthProvider = Depends(get_auth_provider),
) -> Response:
    cfg = load_auth_config()
    values = form_values({"email": email, "password": password})
    try:
        payload = parse_auth_form(values)
    except FormError as e:
        provider.handle_message(str(e), MessageType.ERROR)
        return _render_auth(
            request, cfg, view="sign_in", messages=provider.messages, email=values["email"], status_code=400
        )

    if not provider.sign_in(payload):
        return _render_auth(
            request, cfg, view="sign_in", messages=provider.messages, email=values["email"], status_code=400
        )
    return _follow(cfg, provider, HOME_ROUTE)


@app.get(f"{AUTH_ROUTE}/sign-in/{{provider_name}}")
def oauth_start(provider_name: str, provider: AuthProvider = Depends(get_auth_provider)) -> Response:
    """Start a PKCE OAuth sign in with one of the configured providers."""
    cfg = load_auth_config()
    if provider_name.strip().lower() not in cfg.oauth_providers:
        raise HTTPException(status_code=404, detail=f"Sign in with {provider_name} is not enabled")

    base = _public_base_url(cfg)
    verifier = random_token(32)  # 43+ chars (base64url) -> valid PKCE verifier
    url = provider.sign_in_with_provider(
        provider_name,
        redirect_to=f"{base}{AUTH_ROUTE}/callback",
        code_challenge=pkce_challenge(verifier),
    )

    resp = _redirect(url, status_code=302)
    resp.set_cookie(**_pkce_cookie_kwargs(cfg, value=verifier, max_age=_PKCE_TTL_SECONDS))
    return resp


@app.get(f"{AUTH_ROUTE}/callback", response_class=HTMLResponse)
def oauth_callback(
    request: Request,
    code: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    provider: AuthProvider = Depends(get_auth_provider),
) -> Response:
    """Finish the OAuth round-trip: exchange the code for a session."""
    cfg = load_auth_config()
    verifier = (request.cookies.get(_PKCE_COOKIE) or "").strip()

    if error_description:
        provider.handle_message(error_description, MessageType.ERROR)
    elif not code or not verifier:
        provider.handle_message("Sign in link is invalid or has expired", MessageType.ERROR)
    elif provider.complete_oauth(code, verifier):
        resp = _follow(cfg, provider, HOME_ROUTE)
        resp.set_cookie(**_pkce_cookie_kwargs(cfg, value="", max_age=0))
        return resp

    resp = _render_auth(request, cfg, view="sign_in", messages=provider.messages, status_code=400)
    resp.set_cookie(**_pkce_cookie_kwargs(cfg, value="", max_age=0))
    return resp


@app.post(f"{AUTH_ROUTE}/sign-out")
def sign_out(provider: AuthProvider = Depends(get_auth_provider)) -> Response:
    cfg = load_auth_config()
    # On failure the user is still signed in; go back home with the error banner.
    fallback = AUTH_ROUTE if provider.sign_out() else HOME_ROUTE
    return _follow(cfg, provider, fallback)


@app.post("/api/auth")
def sync_session(body: SessionSyncRequest, client: GoTrueClient = Depends(get_client)) -> JSONResponse:
    """
    Same-origin session sync: mirror a browser-side auth event into the session cookie.

    Session events must carry a session whose access token the provider accepts.
    """
    cfg = load_auth_config()
    session: Optional[AuthSession] = None
    if body.event != AuthChangeEvent.SIGNED_OUT and body.session is not None:
        try:
            session = AuthSession.from_dict(body.session)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        try:
            user = client.get_user(session.access_token)
        except AuthApiError as e:
            logger.info("Session sync rejected (status=%s): %s", e.status, e.message)
            raise HTTPException(status_code=401, detail="Invalid session")
        session = dataclasses.replace(session, user=user)

    resp = JSONResponse(content={"ok": True, "event": body.event.value})
    resp.headers["Cache-Control"] = "no-store"
    try:
        apply_auth_event(cfg, resp, body.event, session)
    except ValueError as e:
        status = 400 if session is None else 500
        raise HTTPException(status_code=status, detail=str(e))
    return resp


@app.get("/api/auth/user")
def auth_user(session: Optional[AuthSession] = Depends(current_session)) -> JSONResponse:
    # No `WWW-Authenticate`: browsers would show a credentials modal over the pages.
    if session is None or session.user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    resp = JSONResponse(content={"ok": True, "user": session.user.to_dict()})
    resp.headers["Cache-Control"] = "no-store"
    return resp


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    cfg = load_auth_config()
    if not cfg.provider_configured:
        logger.warning("Auth provider not configured: set SUPABASE_URL and SUPABASE_ANON_KEY")
    if not cfg.session_secret:
        logger.warning("AUTH_SESSION_SECRET is not set: sign in cannot persist sessions")

    logger.info("Starting SupaAuth server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
