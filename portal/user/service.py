from __future__ import annotations

import logging
from typing import Optional

from portal.auth.models import AuthSession
from portal.auth.provider import AuthProviderClient
from portal.storage.users import User, UserStore

logger = logging.getLogger(__name__)


def get_user_by_email(store: UserStore, email: str) -> Optional[User]:
    return store.get_user_by_email(email.strip().lower())


def try_create_user(
    *,
    provider: AuthProviderClient,
    store: UserStore,
    auth_session: AuthSession,
) -> Optional[User]:
    """
    Persist the user row for a freshly signed-in account.

    If the row cannot be stored, the provider account is deleted so the same email can
    be registered again from scratch later.
    """
    user = store.create_user(auth_session.user_id, auth_session.email.lower())
    if user is None:
        if provider.delete_account(auth_session.user_id) is None:
            # Orphaned provider account; accepted, the operator can clean it up.
            logger.warning("Rollback failed: could not delete provider account %s", auth_session.user_id)
        return None
    return user


def create_user_account(
    email: str,
    password: str,
    *,
    provider: AuthProviderClient,
    store: UserStore,
) -> Optional[AuthSession]:
    """
    Create the provider account, sign it in, and store the user row.

    Either every step succeeds and a usable session is returned, or the provider is left
    with no account for this email and None is returned.

    Args:
        email: Email address (case-insensitive; stored lower-cased)
        password: Plain text password, forwarded to the provider only
        provider: Admin provider client for this request
        store: User datastore

    Returns:
        The first AuthSession of the new account, or None
    """
    email = email.strip().lower()

    account = provider.create_account(email, password)
    if account is None:
        return None

    auth_session = provider.sign_in(email, password)
    if auth_session is None:
        # Account exists but cannot be used; remove it so it can be re-created later.
        if provider.delete_account(account.id) is None:
            logger.warning("Rollback failed: could not delete provider account %s", account.id)
        return None

    user = try_create_user(provider=provider, store=store, auth_session=auth_session)
    if user is None:
        return None

    logger.info("Created user account %s", auth_session.user_id)
    return auth_session
