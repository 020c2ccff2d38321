"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .account import Account


@dataclass(slots=True)
class RegisterAccountInput:
    """Validated inputs required to register a storefront account."""

    username: str
    email: str
    password: str
    location: str | None = None


@dataclass(slots=True)
class NewAccount:
    """Fields the account store needs to insert a fresh, unverified account."""

    username: str
    email: str
    password_hash: str
    verification_token: str
    location: str | None = None


class RegistrationOutcome(str, enum.Enum):
    REGISTERED = "registered"
    RESENT = "resent"


@dataclass(slots=True)
class RegistrationResult:
    account: Account
    outcome: RegistrationOutcome
