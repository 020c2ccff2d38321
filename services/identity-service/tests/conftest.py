from __future__ import annotations

import dataclasses
import itertools
from datetime import datetime, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from storefront_identity.api import routes
from storefront_identity.domain.account import Account, normalize_email
from storefront_identity.domain.contracts import NewAccount
from storefront_identity.domain.errors import DuplicateAccountError, StaleAccountError
from storefront_identity.domain.service import IdentityService
from storefront_identity.repository import ANY_TOKEN, MUTABLE_COLUMNS
from storefront_identity.security.passwords import PasswordHasher
from storefront_identity.security.tokens import TokenService

SECRET = "test-secret"
ISSUER = "storefront.test"


class FakeRepository:
    """In-memory repository mimicking the Postgres-backed behaviors."""

    def __init__(self) -> None:
        self.accounts: dict[int, Account] = {}
        self._ids = itertools.count(1)

    def find_by_username(self, username: str):
        for account in self.accounts.values():
            if account.username == username:
                return dataclasses.replace(account)
        return None

    def find_by_email(self, email: str):
        normalized = normalize_email(email)
        for account in self.accounts.values():
            if account.email == normalized:
                return dataclasses.replace(account)
        return None

    def create(self, payload: NewAccount) -> Account:
        email = normalize_email(payload.email)
        for account in self.accounts.values():
            if account.username == payload.username:
                raise DuplicateAccountError("username")
            if account.email == email:
                raise DuplicateAccountError("email")
        account = Account(
            account_id=next(self._ids),
            username=payload.username,
            email=email,
            password_hash=payload.password_hash,
            created_at=datetime.now(timezone.utc),
            verification_token=payload.verification_token,
            location=payload.location,
        )
        self.accounts[account.account_id] = account
        return dataclasses.replace(account)

    def save(self, account: Account, *, columns, expected_token=ANY_TOKEN, pending_only=False) -> Account:
        columns = tuple(columns)
        assert columns and set(columns) <= set(MUTABLE_COLUMNS), columns
        stored = self.accounts.get(account.account_id)
        if stored is None:
            raise StaleAccountError(f"account {account.account_id} missing")
        if expected_token is not ANY_TOKEN and stored.verification_token != expected_token:
            raise StaleAccountError(f"account {account.account_id} changed concurrently")
        if pending_only and stored.is_verified:
            raise StaleAccountError(f"account {account.account_id} already verified")
        changes = {column: getattr(account, column) for column in columns}
        if "is_verified" in changes:
            changes["is_verified"] = stored.is_verified or changes["is_verified"]
        updated = dataclasses.replace(stored, **changes)
        self.accounts[account.account_id] = updated
        return dataclasses.replace(updated)

    def stored(self, email: str) -> Account:
        return self.accounts[self.find_by_email(email).account_id]


class RecordingNotifier:
    """Collects dispatched tokens instead of sending email."""

    def __init__(self) -> None:
        self.verification: list[tuple[str, str]] = []
        self.password_reset: list[tuple[str, str]] = []

    def send_verification_email(self, email: str, token: str) -> None:
        self.verification.append((email, token))

    def send_forgot_password_email(self, email: str, token: str) -> None:
        self.password_reset.append((email, token))


@pytest.fixture
def hasher() -> PasswordHasher:
    # Low costs keep the suite fast; the algorithm is unchanged.
    return PasswordHasher(time_cost=1, memory_cost=8 * 1024, parallelism=1)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(secret=SECRET, issuer=ISSUER)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(repository, hasher, tokens, notifier) -> IdentityService:
    return IdentityService(
        repository,
        hasher,
        tokens,
        notifier,
        verification_ttl_seconds=900,
        reset_ttl_seconds=900,
    )


@pytest.fixture
def api_client(service):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    app.state.identity_service = service

    with TestClient(app) as client:
        yield client, service
