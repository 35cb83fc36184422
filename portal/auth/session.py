from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from portal.auth.config import AuthConfig
from portal.auth.models import AuthSession

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "__authSession"
SESSION_SALT = "portal-auth-session-v1"
SESSION_KEY = "authenticated"
SESSION_ERROR_KEY = "error"

# Browsers silently drop cookies larger than this (name + value + attributes).
MAX_COOKIE_BYTES = 4096


@dataclass(frozen=True)
class SessionRecord:
    """
    Decoded cookie contents.

    `auth_session` is durable: it survives commits unless explicitly overwritten.
    `flash_error` is one-shot: every commit overwrites it.
    """

    auth_session: Optional[AuthSession] = None
    flash_error: Optional[str] = None


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)


def encode_record(cfg: AuthConfig, record: SessionRecord) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    payload: Dict[str, Any] = {
        SESSION_KEY: record.auth_session.to_dict() if record.auth_session else None,
        SESSION_ERROR_KEY: record.flash_error,
    }
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    value = s.dumps(raw)
    if len(SESSION_COOKIE_NAME) + 1 + len(value) > MAX_COOKIE_BYTES:
        logger.warning(
            "Session cookie is %d bytes; browsers may drop cookies over %d bytes",
            len(value),
            MAX_COOKIE_BYTES,
        )
    return value


def decode_record(cfg: AuthConfig, value: str | None) -> SessionRecord:
    if not value:
        return SessionRecord()
    s = _serializer(cfg)
    if s is None:
        return SessionRecord()
    try:
        raw = s.loads(value, max_age=cfg.session_max_age_seconds)
        data = json.loads(raw)
    except (BadSignature, BadTimeSignature, ValueError):
        return SessionRecord()
    if not isinstance(data, dict):
        return SessionRecord()
    flash = data.get(SESSION_ERROR_KEY)
    return SessionRecord(
        auth_session=AuthSession.from_dict(data.get(SESSION_KEY)),
        flash_error=str(flash) if flash else None,
    )


def session_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return {
        "key": SESSION_COOKIE_NAME,
        "value": value,
        "max_age": cfg.session_max_age_seconds,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs(cfg: AuthConfig) -> dict:
    return {
        "key": SESSION_COOKIE_NAME,
        "value": "",
        "max_age": 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
