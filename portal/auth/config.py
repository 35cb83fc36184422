from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

SESSION_MAX_AGE_SECONDS = 60 * 60 * 24 * 7  # 7 days
REFRESH_THRESHOLD_SECONDS = 60 * 10  # 10 minutes
LOGIN_PATH = "/login"


@dataclass(frozen=True)
class AuthConfig:
    # Identity provider (GoTrue REST API)
    provider_url: Optional[str]
    provider_anon_key: Optional[str]
    provider_service_role_key: Optional[str]

    # Session configuration
    public_base_url: Optional[str]  # Used to build magic-link / reset redirect URLs
    session_secret: Optional[str]  # Required for session signing
    session_max_age_seconds: int
    refresh_threshold_seconds: int
    cookie_secure: bool
    login_path: str

    @property
    def provider_enabled(self) -> bool:
        return bool(self.provider_url and self.provider_anon_key)

    @property
    def admin_enabled(self) -> bool:
        return bool(self.provider_url and self.provider_service_role_key)


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


def _strip_or_none(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load session/provider configuration from environment variables.

    Cookies are Secure in production (APP_ENV=production) or when the public base URL
    is https, unless AUTH_COOKIE_SECURE says otherwise.
    """
    public_base_url = _strip_or_none("AUTH_PUBLIC_BASE_URL")
    app_env = (os.getenv("APP_ENV", "") or "development").strip().lower()

    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        cookie_secure = app_env == "production" or (public_base_url or "").startswith("https://")

    max_age = _env_int("AUTH_SESSION_MAX_AGE_SECONDS", SESSION_MAX_AGE_SECONDS)
    if max_age <= 60:
        max_age = 60

    threshold = _env_int("AUTH_REFRESH_THRESHOLD_SECONDS", REFRESH_THRESHOLD_SECONDS)
    if threshold < 0:
        threshold = 0

    login_path = (os.getenv("AUTH_LOGIN_PATH", "") or LOGIN_PATH).strip()
    if not login_path.startswith("/"):
        login_path = LOGIN_PATH

    provider_url = _strip_or_none("AUTH_PROVIDER_URL")

    return AuthConfig(
        provider_url=provider_url.rstrip("/") if provider_url else None,
        provider_anon_key=_strip_or_none("AUTH_PROVIDER_ANON_KEY"),
        provider_service_role_key=_strip_or_none("AUTH_PROVIDER_SERVICE_ROLE_KEY"),
        public_base_url=public_base_url.rstrip("/") if public_base_url else None,
        session_secret=_strip_or_none("AUTH_SESSION_SECRET"),
        session_max_age_seconds=max_age,
        refresh_threshold_seconds=threshold,
        cookie_secure=cookie_secure,
        login_path=login_path,
    )
