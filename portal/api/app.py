"""
Portal web server.

Login, registration, logout and password flows on top of the cookie session lifecycle.
Protected routes call `require_auth_session()` and either serve the request or return the
redirect it produced.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from portal.auth.config import load_auth_config
from portal.auth.deps import get_admin_provider, get_session_manager, get_user_store
from portal.auth.lifecycle import Abort, SessionLifecycleManager, apply_session_cookie
from portal.auth.provider import AuthProviderClient, get_client
from portal.auth.rate_limit import get_rate_limiter
from portal.auth.util import safe_redirect
from portal.storage.users import PostgresUserStore
from portal.user.service import create_user_account, get_user_by_email

logger = logging.getLogger(__name__)

app = FastAPI(title="Portal")


class CredentialsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    password: Optional[str] = None
    redirect_to: Optional[str] = Field(default=None, alias="redirectTo")


class EmailRequest(BaseModel):
    email: Optional[str] = None


class PasswordRequest(BaseModel):
    password: Optional[str] = None


def _credentials(body: CredentialsRequest) -> tuple[str, str]:
    email = (body.email or "").strip().lower()
    password = body.password or ""
    if not email or not password:
        raise HTTPException(status_code=400, detail="Missing email or password")
    return email, password


def _require_email(body: EmailRequest) -> str:
    email = (body.email or "").strip().lower()
    if "@" not in email:
        raise HTTPException(status_code=400, detail="Missing email")
    return email


def _no_store(resp: Response) -> Response:
    resp.headers["Cache-Control"] = "no-store"
    return resp


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


@app.get("/login")
def login_page(
    request: Request,
    redirect_to: str = Query("/", alias="redirectTo"),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> Response:
    """
    Login page state: the one-shot error left by the last session failure, if any.

    Already signed-in visitors are sent straight to their destination.
    """
    safe_to = safe_redirect(redirect_to)
    if manager.get_auth_session(request) is not None:
        return _no_store(RedirectResponse(url=safe_to, status_code=302))

    error = manager.get_flash_error(request)
    resp = JSONResponse(content={"ok": True, "error": error, "redirectTo": safe_to})
    if error:
        # Reading the flash consumes it.
        resp.set_cookie(**manager.commit_auth_session(request))
    return _no_store(resp)


@app.post("/login")
def login(
    request: Request,
    body: CredentialsRequest,
    manager: SessionLifecycleManager = Depends(get_session_manager),
    provider: AuthProviderClient = Depends(get_admin_provider),
) -> Response:
    """
    Email/password sign-in.
    Rate-limited per email to slow down brute force attempts.
    """
    email, password = _credentials(body)

    rate_limiter = get_rate_limiter()
    allowed, remaining = rate_limiter.check_and_increment(email)
    if not allowed:
        raise HTTPException(status_code=429, detail="Too many failed login attempts. Please try again later.")

    auth_session = provider.sign_in(email, password)
    if auth_session is None:
        raise HTTPException(status_code=401, detail=f"Invalid email or password ({remaining} attempts remaining)")

    rate_limiter.reset(email)
    return manager.create_auth_session(request, auth_session, body.redirect_to)


@app.post("/join")
def join(
    request: Request,
    body: CredentialsRequest,
    manager: SessionLifecycleManager = Depends(get_session_manager),
    provider: AuthProviderClient = Depends(get_admin_provider),
    store: PostgresUserStore = Depends(get_user_store),
) -> Response:
    email, password = _credentials(body)

    if get_user_by_email(store, email) is not None:
        raise HTTPException(status_code=409, detail="A user already exists with this email")

    auth_session = create_user_account(email, password, provider=provider, store=store)
    if auth_session is None:
        raise HTTPException(status_code=400, detail="Unable to create account")

    return manager.create_auth_session(request, auth_session, body.redirect_to)


@app.post("/logout")
def logout(request: Request, manager: SessionLifecycleManager = Depends(get_session_manager)) -> Response:
    """Revoke the provider session (best effort) and clear the cookie."""
    cfg = load_auth_config()
    auth_session = manager.get_auth_session(request)
    if auth_session is not None and cfg.provider_enabled:
        if not get_client(cfg, access_token=auth_session.access_token).sign_out():
            logger.info("Provider sign-out failed for user %s; clearing cookie anyway", auth_session.user_id)
    return manager.destroy_auth_session(request)


@app.post("/forgot-password")
def forgot_password(body: EmailRequest, provider: AuthProviderClient = Depends(get_admin_provider)) -> Dict[str, Any]:
    email = _require_email(body)
    if not provider.send_password_reset(email):
        raise HTTPException(status_code=502, detail="Unable to send reset password link")
    return {"ok": True}


@app.post("/send-magic-link")
def send_magic_link(body: EmailRequest, provider: AuthProviderClient = Depends(get_admin_provider)) -> Dict[str, Any]:
    email = _require_email(body)
    if not provider.send_magic_link(email):
        raise HTTPException(status_code=502, detail="Unable to send magic link")
    return {"ok": True}


@app.get("/me")
def me(request: Request, manager: SessionLifecycleManager = Depends(get_session_manager)) -> Response:
    result = manager.require_auth_session(request)
    if isinstance(result, Abort):
        return result.response

    auth_session = result.auth_session
    resp = JSONResponse(content={"ok": True, "user": {"id": auth_session.user_id, "email": auth_session.email}})
    return _no_store(apply_session_cookie(resp, result))


@app.post("/reset-password")
def reset_password(
    request: Request,
    body: PasswordRequest,
    manager: SessionLifecycleManager = Depends(get_session_manager),
    provider: AuthProviderClient = Depends(get_admin_provider),
) -> Response:
    """
    Set a new password for the signed-in user.

    The access token is verified against the provider before a credential change. A refresh
    here cannot redirect (the body would be lost), so the rotated cookie rides on our response.
    """
    password = body.password or ""
    if not password:
        raise HTTPException(status_code=400, detail="Missing password")

    result = manager.require_auth_session(request, verify=True)
    if isinstance(result, Abort):
        return result.response

    account = provider.update_password(result.auth_session.user_id, password)
    if account is None:
        # A refresh above already rotated the tokens; the error still has to carry the cookie.
        resp = JSONResponse(status_code=400, content={"detail": "Unable to update password"})
        return _no_store(apply_session_cookie(resp, result))

    resp = JSONResponse(content={"ok": True})
    return _no_store(apply_session_cookie(resp, result))


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

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

    logger.info("Starting portal server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
