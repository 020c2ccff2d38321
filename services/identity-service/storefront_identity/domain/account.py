from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


def normalize_email(email: str) -> str:
    """Return the canonical form used for every email lookup and token subject."""
    return email.strip().lower()


@dataclass(slots=True)
class Account:
    """Aggregate root for a storefront user identity."""

    account_id: int
    username: str
    email: str
    password_hash: str
    created_at: datetime
    verification_token: str | None = None
    is_verified: bool = False
    is_seller: bool = False
    is_admin: bool = False
    location: str | None = None

    @property
    def has_pending_token(self) -> bool:
        return bool(self.verification_token)
