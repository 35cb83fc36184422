from __future__ import annotations

from urllib.parse import urlencode

from starlette.requests import Request

DEFAULT_REDIRECT = "/"
SAFE_METHODS = frozenset({"GET", "HEAD"})


def safe_redirect(to: str | None, default: str = DEFAULT_REDIRECT) -> str:
    """
    Prevent open-redirects: allow only same-origin relative paths like `/notes?page=2`.
    """
    # Browsers ignore CR, LF and tab inside URLs; checks run on the cleaned path.
    p = (to or "").replace("\r", "").replace("\n", "").replace("\t", "").strip()
    if not p:
        return default
    if not p.startswith("/"):
        return default
    # Disallow scheme-relative (`//evil.com`) and the backslash variant browsers normalize to it.
    if p.startswith("//") or p.startswith("/\\"):
        return default
    return p


def get_current_path(request: Request) -> str:
    """Path plus query string of the request, suitable for redirecting back to it."""
    path = request.url.path or "/"
    query = request.url.query
    return f"{path}?{query}" if query else path


def make_redirect_to_from_here(request: Request) -> str:
    """Query string (without `?`) that sends the user back here after logging in."""
    return urlencode({"redirectTo": get_current_path(request)})


def is_get(request: Request) -> bool:
    """Navigational requests that browsers replay safely when following a redirect."""
    return request.method.upper() in SAFE_METHODS
