from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

import psycopg

logger = logging.getLogger(__name__)


@dataclass
class User:
    """Application user row. `id` is the identity-provider account id."""

    id: str
    email: str
    created_at: Optional[datetime] = None


class UserStore(Protocol):
    def create_user(self, user_id: str, email: str) -> Optional[User]: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...


def ensure_users_table(conn: psycopg.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS users (
          id text PRIMARY KEY,
          email text NOT NULL UNIQUE,
          created_at timestamptz NOT NULL DEFAULT now()
        );
        """)
    conn.commit()


class PostgresUserStore:
    """`users` table access over a single psycopg connection owned by the caller."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn

    def create_user(self, user_id: str, email: str) -> Optional[User]:
        """
        Insert a user row.

        Returns None on any failure, including a uniqueness conflict on id or email.
        The transaction is rolled back so the connection stays usable.
        """
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO users (id, email)
                    VALUES (%s, %s)
                    RETURNING id, email, created_at
                    """,
                    (user_id, email.lower()),
                )
                row = cur.fetchone()
            self.conn.commit()
        except psycopg.IntegrityError:
            self.conn.rollback()
            logger.info("User row already exists for id=%s", user_id)
            return None
        except psycopg.Error as e:
            self.conn.rollback()
            logger.warning("Failed to create user row: %s", type(e).__name__)
            return None

        if not row:
            return None
        return User(id=str(row[0]), email=str(row[1]), created_at=row[2])

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self.conn.cursor() as cur:
            cur.execute("SELECT id, email, created_at FROM users WHERE email = %s", (email.lower(),))
            row = cur.fetchone()
        if not row:
            return None
        return User(id=str(row[0]), email=str(row[1]), created_at=row[2])
