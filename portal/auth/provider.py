"""
Identity provider client (GoTrue REST API).

Every operation is one HTTP round trip. Errors, non-2xx responses and "ok but empty"
responses all collapse to the same failure value (None / False): callers only need to
know whether the operation happened.

Clients are cheap and must be built per request via `get_admin_client()` / `get_client()`.
Never keep one at module level: a client scoped to one user's access token must not be
reachable from a concurrent request for another user.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import requests

from portal.auth.config import AuthConfig
from portal.auth.models import AuthAccount, AuthSession

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10


def map_auth_session(data: Any, *, now: Optional[float] = None) -> Optional[AuthSession]:
    """
    Map a GoTrue token response to an AuthSession.

    Returns None if any field is missing (never a partially populated session).
    """
    if not isinstance(data, dict):
        return None
    user = data.get("user")
    if not isinstance(user, dict):
        return None

    expires_at = data.get("expires_at")
    if expires_at is None and data.get("expires_in") is not None:
        try:
            expires_at = int(now if now is not None else time.time()) + int(data["expires_in"])
        except (TypeError, ValueError):
            expires_at = None

    return AuthSession.from_dict(
        {
            "userId": user.get("id"),
            "email": user.get("email"),
            "accessToken": data.get("access_token"),
            "refreshToken": data.get("refresh_token"),
            "expiresAt": expires_at,
        }
    )


def map_auth_account(data: Any) -> Optional[AuthAccount]:
    if not isinstance(data, dict):
        return None
    account_id = str(data.get("id") or "").strip()
    if not account_id:
        return None
    email = str(data.get("email") or "").strip().lower() or None
    return AuthAccount(id=account_id, email=email)


class AuthProviderClient:
    """
    Thin adapter over the provider's account/session endpoints.

    `api_key` selects the privilege level (service role vs anon). `access_token`, when set,
    scopes the client to a single end user.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: Optional[str] = None,
        redirect_base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.redirect_base_url = (redirect_base_url or "").rstrip("/")
        self.timeout = timeout

    def _headers(self, bearer: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {bearer or self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        op: str,
        method: str,
        path: str,
        *,
        bearer: Optional[str] = None,
        **kwargs: Any,
    ) -> Optional[requests.Response]:
        """
        Make one call to the provider. Returns the response on 2xx, otherwise None.

        Rate limiting (429) and transient 5xx are treated as immediate failures.
        """
        url = f"{self.base_url}/auth/v1{path}"
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = requests.request(method, url, headers=self._headers(bearer), **kwargs)
        except requests.RequestException as e:
            logger.warning("Auth provider %s failed: %s", op, type(e).__name__)
            return None
        if response.status_code >= 400:
            # Avoid leaking tokens or credentials; status is enough context.
            logger.warning("Auth provider %s failed (status=%s)", op, response.status_code)
            return None
        return response

    def _json(self, op: str, method: str, path: str, **kwargs: Any) -> Optional[Dict[str, Any]]:
        response = self._request(op, method, path, **kwargs)
        if response is None:
            return None
        try:
            data = response.json()
        except ValueError:
            logger.warning("Auth provider %s returned an invalid body", op)
            return None
        return data if isinstance(data, dict) and data else None

    def _redirect_params(self, path: str) -> Dict[str, str]:
        if not self.redirect_base_url:
            return {}
        return {"redirect_to": f"{self.redirect_base_url}{path}"}

    # ---- account administration (service role) ----

    def create_account(self, email: str, password: str) -> Optional[AuthAccount]:
        data = self._json(
            "create_account",
            "POST",
            "/admin/users",
            json={"email": email, "password": password, "email_confirm": True},
        )
        return map_auth_account(data)

    def delete_account(self, account_id: str) -> Optional[bool]:
        response = self._request("delete_account", "DELETE", f"/admin/users/{account_id}")
        if response is None:
            return None
        return True

    def update_password(self, account_id: str, password: str) -> Optional[AuthAccount]:
        data = self._json(
            "update_password",
            "PUT",
            f"/admin/users/{account_id}",
            json={"password": password},
        )
        return map_auth_account(data)

    # ---- sessions ----

    def sign_in(self, email: str, password: str) -> Optional[AuthSession]:
        data = self._json(
            "sign_in",
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return map_auth_session(data)

    def verify(self, access_token: str) -> Optional[AuthAccount]:
        """Resolve the account behind an access token; None if the token is no longer good."""
        if not access_token:
            return None
        data = self._json("verify", "GET", "/user", bearer=access_token)
        return map_auth_account(data)

    def refresh(self, refresh_token: Optional[str]) -> Optional[AuthSession]:
        """Exchange a refresh token for a new session. The refresh token rotates."""
        if not refresh_token:
            return None
        data = self._json(
            "refresh",
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return map_auth_session(data)

    def sign_out(self) -> bool:
        """Revoke the session of the user this client is scoped to."""
        if not self.access_token:
            raise ValueError("sign_out requires a client scoped to a user access token")
        return self._request("sign_out", "POST", "/logout") is not None

    # ---- emails ----

    def send_magic_link(self, email: str) -> bool:
        response = self._request(
            "send_magic_link",
            "POST",
            "/otp",
            params=self._redirect_params("/oauth/callback"),
            json={"email": email, "create_user": False},
        )
        return response is not None

    def send_password_reset(self, email: str) -> bool:
        response = self._request(
            "send_password_reset",
            "POST",
            "/recover",
            params=self._redirect_params("/reset-password"),
            json={"email": email},
        )
        return response is not None


def get_admin_client(cfg: AuthConfig) -> AuthProviderClient:
    """
    Privileged client for server-side identity mutations.

    Built per call; never cache the result across requests.
    """
    if not cfg.provider_url or not cfg.provider_service_role_key:
        raise ValueError("AUTH_PROVIDER_URL and AUTH_PROVIDER_SERVICE_ROLE_KEY required")
    return AuthProviderClient(
        cfg.provider_url,
        cfg.provider_service_role_key,
        redirect_base_url=cfg.public_base_url,
    )


def get_client(cfg: AuthConfig, access_token: Optional[str] = None) -> AuthProviderClient:
    """
    Unprivileged client, optionally scoped to one end user's access token.

    Built per request so a bearer token never outlives the request that owns it.
    """
    if not cfg.provider_url or not cfg.provider_anon_key:
        raise ValueError("AUTH_PROVIDER_URL and AUTH_PROVIDER_ANON_KEY required")
    return AuthProviderClient(
        cfg.provider_url,
        cfg.provider_anon_key,
        access_token=access_token,
        redirect_base_url=cfg.public_base_url,
    )
