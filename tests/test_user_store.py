from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import psycopg

from portal.storage.config import DatabaseConfig, build_postgres_dsn, load_database_config
from portal.storage.users import PostgresUserStore, User, ensure_users_table


def _conn_with_row(row) -> tuple:
    conn = MagicMock()
    cur = MagicMock()
    cur.fetchone.return_value = row
    conn.cursor.return_value.__enter__.return_value = cur
    return conn, cur


def test_create_user_inserts_lower_cased_email() -> None:
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    conn, cur = _conn_with_row(("user-1", "user@example.com", created))

    user = PostgresUserStore(conn).create_user("user-1", "USER@Example.com")

    assert user == User(id="user-1", email="user@example.com", created_at=created)
    assert cur.execute.call_args.args[1] == ("user-1", "user@example.com")
    conn.commit.assert_called_once()


def test_create_user_unique_violation_returns_none() -> None:
    conn, cur = _conn_with_row(None)
    cur.execute.side_effect = psycopg.errors.UniqueViolation("duplicate key")

    assert PostgresUserStore(conn).create_user("user-1", "user@example.com") is None
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()


def test_create_user_other_db_error_returns_none() -> None:
    conn, cur = _conn_with_row(None)
    cur.execute.side_effect = psycopg.OperationalError("connection lost")

    assert PostgresUserStore(conn).create_user("user-1", "user@example.com") is None
    conn.rollback.assert_called_once()


def test_get_user_by_email_is_case_insensitive() -> None:
    conn, cur = _conn_with_row(("user-1", "user@example.com", None))

    user = PostgresUserStore(conn).get_user_by_email("User@Example.COM")

    assert user is not None
    assert user.id == "user-1"
    assert cur.execute.call_args.args[1] == ("user@example.com",)


def test_get_user_by_email_missing() -> None:
    conn, _ = _conn_with_row(None)

    assert PostgresUserStore(conn).get_user_by_email("nobody@example.com") is None


def test_ensure_users_table() -> None:
    conn = MagicMock()

    ensure_users_table(conn)

    sql = conn.execute.call_args.args[0]
    assert "CREATE TABLE IF NOT EXISTS users" in sql
    assert "email text NOT NULL UNIQUE" in sql
    conn.commit.assert_called_once()


def test_build_dsn_prefers_explicit_dsn(monkeypatch) -> None:
    monkeypatch.setenv("POSTGRES_DSN", "postgresql://u:p@db/portal")
    monkeypatch.setenv("POSTGRES_HOST", "ignored")
    load_database_config.cache_clear()

    assert build_postgres_dsn(load_database_config()) == "postgresql://u:p@db/portal"


def test_build_dsn_from_parts() -> None:
    cfg = DatabaseConfig(
        postgres_dsn=None,
        postgres_host="db",
        postgres_port=5432,
        postgres_db="portal",
        postgres_user="portal",
        postgres_password="s3cret pass",
    )

    dsn = build_postgres_dsn(cfg)

    assert dsn is not None
    assert "host=db" in dsn
    assert "dbname=portal" in dsn


def test_build_dsn_incomplete_is_none(monkeypatch) -> None:
    for name in ("POSTGRES_DSN", "POSTGRES_HOST", "POSTGRES_DB", "POSTGRES_USER", "POSTGRES_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    load_database_config.cache_clear()

    assert build_postgres_dsn(load_database_config()) is None


def test_database_config_is_loaded_once(monkeypatch) -> None:
    monkeypatch.setenv("POSTGRES_DSN", "postgresql://u:p@db/portal")
    load_database_config.cache_clear()
    cfg = load_database_config()

    monkeypatch.setenv("POSTGRES_DSN", "postgresql://u:p@other/portal")

    assert load_database_config() is cfg
    load_database_config.cache_clear()
    assert load_database_config().postgres_dsn == "postgresql://u:p@other/portal"
