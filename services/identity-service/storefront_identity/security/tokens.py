"""Utilities for issuing and validating single-purpose email tokens."""

from __future__ import annotations

import enum
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt

from ..config import Settings

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["sub", "purpose", "iss", "iat", "exp"]


class TokenPurpose(str, enum.Enum):
    VERIFY_EMAIL = "verify_email"
    RESET_PASSWORD = "reset_password"


class TokenError(Exception):
    """Base class for token validation failures."""


class TokenInvalid(TokenError):
    """Signature, structure, issuer or purpose check failed."""


class TokenExpired(TokenError):
    """The token is authentic but its ``exp`` claim has passed."""


@dataclass(slots=True, frozen=True)
class TokenClaims:
    subject_email: str
    purpose: TokenPurpose
    expires_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issue and validate signed, expiring JWTs bound to an email and a purpose.

    The service keeps no per-token state. Single-use semantics come from the
    caller comparing a validated token with the copy stored on the account.
    """

    def __init__(
        self,
        *,
        secret: str,
        issuer: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secret = secret
        self._issuer = issuer
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(secret=settings.jwt_secret, issuer=settings.jwt_issuer)

    def issue(self, subject_email: str, purpose: TokenPurpose, ttl_seconds: int) -> str:
        """Create a signed token for ``subject_email``.

        Parameters
        ----------
        subject_email:
            Normalised email embedded in the ``sub`` claim.
        purpose:
            The flow the token may be redeemed in.
        ttl_seconds:
            Lifetime counted from the service clock.

        Returns
        -------
        str
            The encoded JWT.
        """

        now = self._clock()
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": subject_email,
            "purpose": TokenPurpose(purpose).value,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def validate(self, token: str, purpose: TokenPurpose | None = None) -> TokenClaims:
        """Verify signature, issuer, expiry and, when given, purpose.

        Raises
        ------
        TokenExpired
            The signature verifies but the expiry has passed.
        TokenInvalid
            Anything else is wrong with the token.
        """

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                options={"verify_exp": False, "require": _REQUIRED_CLAIMS},
            )
        except jwt.PyJWTError as exc:
            raise TokenInvalid("token invalid") from exc

        claims = self._to_claims(payload)
        # Expiry follows the injected clock, not wall time.
        if claims.expires_at <= self._clock():
            raise TokenExpired("token expired")
        if purpose is not None and claims.purpose is not TokenPurpose(purpose):
            raise TokenInvalid("token purpose mismatch")
        return claims

    def extract_subject(self, token: str) -> str:
        """Return the ``sub`` claim of an authentic token, ignoring expiry."""
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                options={"verify_exp": False, "require": ["sub"]},
            )
        except jwt.PyJWTError as exc:
            raise TokenInvalid("token invalid") from exc
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise TokenInvalid("token subject missing")
        return subject

    def _to_claims(self, payload: dict[str, Any]) -> TokenClaims:
        try:
            return TokenClaims(
                subject_email=str(payload["sub"]),
                purpose=TokenPurpose(payload["purpose"]),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalid("token claims malformed") from exc
