"""
Pytest config.

Local imports like `import portal` rely on the repo root being on sys.path. When invoking a
global `pytest` entrypoint that doesn't happen reliably during collection, so pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from starlette.requests import Request  # noqa: E402

from portal.auth.config import load_auth_config  # noqa: E402
from portal.auth.session import SESSION_COOKIE_NAME  # noqa: E402
from portal.storage.config import load_database_config  # noqa: E402

TEST_SESSION_SECRET = "test-secret-key-for-testing-purposes-only"


@pytest.fixture(autouse=True)
def _auth_env(monkeypatch: pytest.MonkeyPatch):
    """
    Every test starts from the same auth configuration: signing secret and provider set,
    plain-HTTP cookies, default thresholds, and a fresh login rate limiter.
    """
    monkeypatch.setenv("AUTH_SESSION_SECRET", TEST_SESSION_SECRET)
    monkeypatch.setenv("AUTH_PROVIDER_URL", "https://auth.example.test")
    monkeypatch.setenv("AUTH_PROVIDER_ANON_KEY", "anon-key")
    monkeypatch.setenv("AUTH_PROVIDER_SERVICE_ROLE_KEY", "service-role-key")
    monkeypatch.setenv("AUTH_PUBLIC_BASE_URL", "http://localhost:3000")
    for name in (
        "APP_ENV",
        "AUTH_COOKIE_SECURE",
        "AUTH_SESSION_MAX_AGE_SECONDS",
        "AUTH_REFRESH_THRESHOLD_SECONDS",
        "AUTH_LOGIN_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("portal.auth.rate_limit._global_rate_limiter", None)
    load_auth_config.cache_clear()
    load_database_config.cache_clear()
    yield
    load_auth_config.cache_clear()
    load_database_config.cache_clear()


@pytest.fixture
def make_request() -> Callable[..., Request]:
    """Build a Starlette request from a minimal ASGI scope."""

    def _make(
        method: str = "GET",
        path: str = "/",
        query: str = "",
        cookies: Optional[Dict[str, str]] = None,
    ) -> Request:
        headers = []
        if cookies:
            raw = "; ".join(f"{k}={v}" for k, v in cookies.items())
            headers.append((b"cookie", raw.encode("latin-1")))
        scope = {
            "type": "http",
            "method": method,
            "scheme": "http",
            "server": ("testserver", 80),
            "root_path": "",
            "path": path,
            "query_string": query.encode("latin-1"),
            "headers": headers,
        }
        return Request(scope)

    return _make


@pytest.fixture
def session_cookie_value() -> Callable[[str], str]:
    """Extract the session cookie value from a Set-Cookie header."""

    def _value(set_cookie: str) -> str:
        name, _, value = set_cookie.split(";", 1)[0].partition("=")
        assert name.strip() == SESSION_COOKIE_NAME
        return value.strip().strip('"')

    return _value
