"""Identity workflows: registration, email verification, login and password reset."""

from __future__ import annotations

import hmac
import logging
from typing import Protocol

from .account import Account, normalize_email
from .contracts import NewAccount, RegisterAccountInput, RegistrationOutcome, RegistrationResult
from .errors import (
    AccountNotFound,
    AlreadyRegistered,
    DuplicateAccountError,
    InvalidCredentials,
    StaleAccountError,
    TokenRejected,
    UsernameTaken,
)
from ..repository import AccountRepository
from ..security.passwords import PasswordHasher
from ..security.tokens import TokenError, TokenPurpose, TokenService

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send_verification_email(self, email: str, token: str) -> None: ...

    def send_forgot_password_email(self, email: str, token: str) -> None: ...


class IdentityService:
    """Account workflows guarded by signed tokens and a stored-copy check."""

    def __init__(
        self,
        repository: AccountRepository,
        hasher: PasswordHasher,
        tokens: TokenService,
        notifier: Notifier,
        *,
        verification_ttl_seconds: int = 900,
        reset_ttl_seconds: int = 900,
    ) -> None:
        """Store the collaborators used by every workflow."""
        self._repository = repository
        self._hasher = hasher
        self._tokens = tokens
        self._notifier = notifier
        self._verification_ttl = verification_ttl_seconds
        self._reset_ttl = reset_ttl_seconds

    def register(self, payload: RegisterAccountInput) -> RegistrationResult:
        """Create an unverified account, or resend verification for a pending one."""
        email = normalize_email(payload.email)
        if self._repository.find_by_username(payload.username) is not None:
            raise UsernameTaken()

        existing = self._repository.find_by_email(email)
        if existing is not None:
            if existing.is_verified:
                raise AlreadyRegistered()
            existing.verification_token = self._tokens.issue(
                email, TokenPurpose.VERIFY_EMAIL, self._verification_ttl
            )
            try:
                account = self._repository.save(
                    existing, columns=("verification_token",), pending_only=True
                )
            except StaleAccountError:
                # Verified between our read and the write.
                raise AlreadyRegistered() from None
            self._notifier.send_verification_email(account.email, account.verification_token)
            logger.info("verification resent for account %s", account.account_id)
            return RegistrationResult(account=account, outcome=RegistrationOutcome.RESENT)

        token = self._tokens.issue(email, TokenPurpose.VERIFY_EMAIL, self._verification_ttl)
        try:
            account = self._repository.create(
                NewAccount(
                    username=payload.username,
                    email=email,
                    password_hash=self._hasher.hash(payload.password),
                    verification_token=token,
                    location=payload.location,
                )
            )
        except DuplicateAccountError as exc:
            if exc.field == "username":
                raise UsernameTaken() from exc
            raise AlreadyRegistered() from exc

        self._notifier.send_verification_email(account.email, token)
        logger.info("account %s registered, pending verification", account.account_id)
        return RegistrationResult(account=account, outcome=RegistrationOutcome.REGISTERED)

    def verify_email(self, token: str) -> Account:
        """Mark the token's account verified and consume the token."""
        account = self._redeem(token, TokenPurpose.VERIFY_EMAIL)
        expected = account.verification_token
        account.verification_token = None
        account.is_verified = True
        account = self._save_consumed(account, expected, ("verification_token", "is_verified"))
        logger.info("account %s verified", account.account_id)
        return account

    def login(self, email: str, password: str) -> Account:
        """Check credentials; unverified accounts may log in."""
        account = self._repository.find_by_email(email)
        if account is None:
            raise AccountNotFound()
        if not self._hasher.verify(password, account.password_hash):
            raise InvalidCredentials()
        return account

    def request_password_reset(self, email: str) -> None:
        """Issue a reset token, replacing any outstanding token, and email it."""
        account = self._repository.find_by_email(email)
        if account is None:
            raise AccountNotFound("no account found with this email")
        account.verification_token = self._tokens.issue(
            account.email, TokenPurpose.RESET_PASSWORD, self._reset_ttl
        )
        account = self._repository.save(account, columns=("verification_token",))
        self._notifier.send_forgot_password_email(account.email, account.verification_token)
        logger.info("password reset requested for account %s", account.account_id)

    def reset_password(self, token: str, new_password: str) -> Account:
        """Replace the password of the token's account and consume the token."""
        account = self._redeem(token, TokenPurpose.RESET_PASSWORD)
        expected = account.verification_token
        account.password_hash = self._hasher.hash(new_password)
        account.verification_token = None
        account = self._save_consumed(account, expected, ("password_hash", "verification_token"))
        logger.info("password reset completed for account %s", account.account_id)
        return account

    def get_account(self, username: str) -> Account | None:
        return self._repository.find_by_username(username)

    def become_seller(self, username: str) -> Account:
        """Grant the seller role; the only code path that writes ``is_seller``."""
        account = self._repository.find_by_username(username)
        if account is None:
            raise AccountNotFound("no account found with this username")
        if account.is_seller:
            return account
        account.is_seller = True
        account = self._repository.save(account, columns=("is_seller",))
        logger.info("account %s became a seller", account.account_id)
        return account

    def _redeem(self, token: str, purpose: TokenPurpose) -> Account:
        """Return the account a token is authoritative for, or raise ``TokenRejected``.

        A token is authoritative only when it is authentic, unexpired, issued
        for ``purpose`` and identical to the copy stored on the account.
        """
        try:
            email = self._tokens.extract_subject(token)
        except TokenError:
            logger.info("%s token rejected: unreadable", purpose.value)
            raise TokenRejected() from None

        account = self._repository.find_by_email(email)
        if account is None or not account.has_pending_token:
            logger.info("%s token rejected: nothing outstanding", purpose.value)
            raise TokenRejected()

        try:
            self._tokens.validate(token, purpose)
        except TokenError as exc:
            logger.info("%s token rejected for account %s: %s", purpose.value, account.account_id, exc)
            raise TokenRejected() from None

        if not hmac.compare_digest(token.encode("utf-8"), account.verification_token.encode("utf-8")):
            logger.info("%s token rejected for account %s: superseded", purpose.value, account.account_id)
            raise TokenRejected()
        return account

    def _save_consumed(self, account: Account, expected_token: str, columns: tuple[str, ...]) -> Account:
        try:
            return self._repository.save(account, columns=columns, expected_token=expected_token)
        except StaleAccountError:
            logger.info("token for account %s consumed concurrently", account.account_id)
            raise TokenRejected() from None
