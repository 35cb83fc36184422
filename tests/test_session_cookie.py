from __future__ import annotations

import logging

from itsdangerous import URLSafeTimedSerializer

from portal.auth.config import load_auth_config
from portal.auth.models import AuthSession
from portal.auth.session import (
    SESSION_COOKIE_NAME,
    SESSION_SALT,
    SessionRecord,
    clear_session_cookie_kwargs,
    decode_record,
    encode_record,
    session_cookie_kwargs,
)


def _session() -> AuthSession:
    return AuthSession(
        user_id="user-1",
        email="user@example.com",
        access_token="a1",
        refresh_token="r1",
        expires_at=1_700_003_600,
    )


def test_record_roundtrip_keeps_both_fields() -> None:
    cfg = load_auth_config()
    value = encode_record(cfg, SessionRecord(auth_session=_session(), flash_error="no-user-session"))

    record = decode_record(cfg, value)

    assert record.auth_session == _session()
    assert record.flash_error == "no-user-session"


def test_decode_with_other_secret_is_empty(monkeypatch) -> None:
    value = encode_record(load_auth_config(), SessionRecord(auth_session=_session()))
    monkeypatch.setenv("AUTH_SESSION_SECRET", "another-secret")
    load_auth_config.cache_clear()

    assert decode_record(load_auth_config(), value) == SessionRecord()


def test_decode_expired_cookie_is_empty(monkeypatch) -> None:
    cfg = load_auth_config()
    value = encode_record(cfg, SessionRecord(auth_session=_session()))
    monkeypatch.setattr("itsdangerous.timed.TimestampSigner.get_timestamp", lambda self: 4_000_000_000)

    assert decode_record(cfg, value) == SessionRecord()


def test_decode_non_object_payload_is_empty() -> None:
    cfg = load_auth_config()
    s = URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)

    assert decode_record(cfg, s.dumps('["not", "a", "record"]')) == SessionRecord()
    assert decode_record(cfg, s.dumps("not json")) == SessionRecord()


def test_partial_session_decodes_to_none() -> None:
    cfg = load_auth_config()
    s = URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)
    raw = '{"authenticated":{"userId":"user-1","email":"user@example.com","accessToken":"a1","refreshToken":"r1"}}'

    assert decode_record(cfg, s.dumps(raw)).auth_session is None


def test_encode_without_secret_returns_none(monkeypatch) -> None:
    monkeypatch.delenv("AUTH_SESSION_SECRET")
    load_auth_config.cache_clear()

    assert encode_record(load_auth_config(), SessionRecord(auth_session=_session())) is None
    assert decode_record(load_auth_config(), "anything") == SessionRecord()


def test_oversized_cookie_logs_warning(caplog) -> None:
    big = AuthSession(
        user_id="user-1",
        email="user@example.com",
        access_token="a" * 5000,
        refresh_token="r1",
        expires_at=1,
    )
    with caplog.at_level(logging.WARNING, logger="portal.auth.session"):
        encode_record(load_auth_config(), SessionRecord(auth_session=big))

    assert "browsers may drop" in caplog.text


def test_cookie_attributes(monkeypatch) -> None:
    cfg = load_auth_config()
    kwargs = session_cookie_kwargs(cfg, "v")
    assert kwargs == {
        "key": SESSION_COOKIE_NAME,
        "value": "v",
        "max_age": 604800,
        "httponly": True,
        "secure": False,
        "samesite": "lax",
        "path": "/",
    }
    assert clear_session_cookie_kwargs(cfg)["max_age"] == 0

    monkeypatch.setenv("APP_ENV", "production")
    load_auth_config.cache_clear()
    assert session_cookie_kwargs(load_auth_config(), "v")["secure"] is True
