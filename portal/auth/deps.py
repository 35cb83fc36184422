from __future__ import annotations

from typing import Iterator

from fastapi import HTTPException

from portal.auth.config import load_auth_config
from portal.auth.lifecycle import SessionLifecycleManager
from portal.auth.provider import AuthProviderClient, get_admin_client
from portal.storage.users import PostgresUserStore


def get_session_manager() -> SessionLifecycleManager:
    """
    A lifecycle manager for the current request.

    Its provider factory builds a new admin client whenever verify/refresh needs one.
    """
    cfg = load_auth_config()
    if not cfg.session_secret:
        raise HTTPException(status_code=500, detail="Session signing is not configured (AUTH_SESSION_SECRET)")
    return SessionLifecycleManager(cfg)


def get_admin_provider() -> AuthProviderClient:
    cfg = load_auth_config()
    if not cfg.admin_enabled:
        raise HTTPException(status_code=500, detail="Auth provider is not configured")
    return get_admin_client(cfg)


def get_user_store() -> Iterator[PostgresUserStore]:
    from portal.storage.config import get_db_connection

    conn = get_db_connection()
    if not conn:
        raise HTTPException(status_code=500, detail="Database not configured")
    try:
        yield PostgresUserStore(conn)
    finally:
        conn.close()
