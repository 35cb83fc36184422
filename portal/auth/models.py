from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AuthSession:
    """Access/refresh token pair for one signed-in user. Lives only in the session cookie."""

    user_id: str
    email: str
    access_token: str
    refresh_token: str
    expires_at: int  # epoch seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "email": self.email,
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["AuthSession"]:
        """
        Rebuild a session from its cookie form.

        Returns None unless every field is present; a partial session is never produced.
        """
        if not isinstance(data, dict):
            return None
        user_id = str(data.get("userId") or "").strip()
        email = str(data.get("email") or "").strip().lower()
        access_token = str(data.get("accessToken") or "").strip()
        refresh_token = str(data.get("refreshToken") or "").strip()
        try:
            expires_at = int(data.get("expiresAt"))
        except (TypeError, ValueError):
            return None
        if not (user_id and email and access_token and refresh_token):
            return None
        return cls(
            user_id=user_id,
            email=email,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )


@dataclass(frozen=True)
class AuthAccount:
    """Identity-provider account (GoTrue user)."""

    id: str
    email: Optional[str] = None
