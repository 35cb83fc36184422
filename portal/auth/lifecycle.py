"""
Session lifecycle: read, validate, refresh, commit and destroy the auth session cookie.

`require_auth_session()` is the entry point for protected routes. It never raises to
abort a request; it returns a tagged result instead:

- `Continue(auth_session, cookie)`: serve the request. When `cookie` is set the session was
  refreshed inline (mutating request) and the caller MUST attach it to its response,
  e.g. with `apply_session_cookie()`, or the rotated refresh token is lost.
- `Abort(response)`: return `response` (a redirect with cookie side effects) as-is.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from portal.auth.config import AuthConfig
from portal.auth.models import AuthSession
from portal.auth.provider import AuthProviderClient, get_admin_client
from portal.auth.session import (
    SESSION_COOKIE_NAME,
    SessionRecord,
    clear_session_cookie_kwargs,
    decode_record,
    encode_record,
    session_cookie_kwargs,
)
from portal.auth.util import get_current_path, is_get, make_redirect_to_from_here, safe_redirect

logger = logging.getLogger(__name__)

NO_USER_SESSION = "no-user-session"
FAIL_REFRESH_AUTH_SESSION = "fail-refresh-auth-session"


class _Keep(enum.Enum):
    KEEP = "keep"


# Sentinel for "leave the stored session as it is"; distinct from None, which clears it.
KEEP = _Keep.KEEP


@dataclass(frozen=True)
class Continue:
    auth_session: AuthSession
    cookie: Optional[dict] = None  # set_cookie kwargs the caller must forward


@dataclass(frozen=True)
class Abort:
    response: Response


SessionResult = Union[Continue, Abort]


def apply_session_cookie(response: Response, result: Continue) -> Response:
    """Attach a refreshed session cookie (if any) to the response a handler produced."""
    if result.cookie:
        response.set_cookie(**result.cookie)
    return response


def _redirect(url: str, cookie: dict) -> RedirectResponse:
    resp = RedirectResponse(url=url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**cookie)
    return resp


class SessionLifecycleManager:
    """
    Per-request session decisions.

    `provider_factory` builds a fresh provider client each time one is needed; it defaults to
    the admin client. `clock` returns epoch seconds.
    """

    def __init__(
        self,
        cfg: AuthConfig,
        *,
        provider_factory: Optional[Callable[[], AuthProviderClient]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not cfg.session_secret:
            raise ValueError("AUTH_SESSION_SECRET is required for session signing")
        self.cfg = cfg
        self._provider_factory = provider_factory or (lambda: get_admin_client(cfg))
        self._clock = clock

    # ---- reading ----

    def _read(self, request: Request) -> SessionRecord:
        return decode_record(self.cfg, request.cookies.get(SESSION_COOKIE_NAME))

    def get_auth_session(self, request: Request) -> Optional[AuthSession]:
        """Decoded session from the cookie. No validation and no network call."""
        return self._read(request).auth_session

    def get_flash_error(self, request: Request) -> Optional[str]:
        return self._read(request).flash_error

    # ---- writing ----

    def commit_auth_session(
        self,
        request: Request,
        *,
        auth_session: Union[AuthSession, None, _Keep] = KEEP,
        flash_error_message: Optional[str] = None,
    ) -> dict:
        """
        Build the Set-Cookie kwargs for the updated session record.

        `auth_session=None` clears the stored session; leaving it at KEEP keeps the stored
        one. The flash field is always replaced, so a flash survives one read.
        """
        current = self._read(request)
        stored = current.auth_session if auth_session is KEEP else auth_session
        value = encode_record(self.cfg, SessionRecord(auth_session=stored, flash_error=flash_error_message))
        if value is None:
            raise ValueError("AUTH_SESSION_SECRET is required for session signing")
        return session_cookie_kwargs(self.cfg, value)

    def create_auth_session(self, request: Request, auth_session: AuthSession, redirect_to: Optional[str]) -> Response:
        cookie = self.commit_auth_session(request, auth_session=auth_session, flash_error_message=None)
        return _redirect(safe_redirect(redirect_to), cookie)

    def destroy_auth_session(self, request: Request) -> Response:
        return _redirect("/", clear_session_cookie_kwargs(self.cfg))

    # ---- lifecycle ----

    def _login_redirect(self, request: Request, *, flash: str, on_fail_redirect_to: Optional[str] = None) -> Abort:
        target = safe_redirect(on_fail_redirect_to, default=self.cfg.login_path)
        cookie = self.commit_auth_session(request, auth_session=None, flash_error_message=flash)
        return Abort(_redirect(f"{target}?{make_redirect_to_from_here(request)}", cookie))

    def is_expiring_soon(self, expires_at: int) -> bool:
        return (expires_at - self.cfg.refresh_threshold_seconds) * 1000 < self._clock() * 1000

    def refresh_auth_session(
        self,
        request: Request,
        auth_session: AuthSession,
        *,
        on_fail_redirect_to: Optional[str] = None,
    ) -> SessionResult:
        refreshed = self._provider_factory().refresh(auth_session.refresh_token)

        # No way to mint a new access token: the user has to log in again.
        if refreshed is None:
            logger.info("Session refresh failed for user %s; redirecting to login", auth_session.user_id)
            return self._login_redirect(
                request, flash=FAIL_REFRESH_AUTH_SESSION, on_fail_redirect_to=on_fail_redirect_to
            )

        cookie = self.commit_auth_session(request, auth_session=refreshed)

        # Browsers replay GETs on redirect, so the handler re-runs with the fresh cookie.
        if is_get(request):
            return Abort(_redirect(get_current_path(request), cookie))

        # A redirect would drop the request body: recover inline, caller forwards the cookie.
        return Continue(auth_session=refreshed, cookie=cookie)

    def require_auth_session(
        self,
        request: Request,
        *,
        on_fail_redirect_to: Optional[str] = None,
        verify: bool = False,
    ) -> SessionResult:
        auth_session = self.get_auth_session(request)

        if auth_session is None or not auth_session.access_token or not auth_session.refresh_token:
            logger.debug("No auth session for %s %s", request.method, request.url.path)
            return self._login_redirect(request, flash=NO_USER_SESSION, on_fail_redirect_to=on_fail_redirect_to)

        # Verifying costs a provider round trip, so it is opt-in.
        is_valid = self._provider_factory().verify(auth_session.access_token) is not None if verify else True

        if not is_valid or self.is_expiring_soon(auth_session.expires_at):
            return self.refresh_auth_session(request, auth_session, on_fail_redirect_to=on_fail_redirect_to)

        return Continue(auth_session=auth_session)
