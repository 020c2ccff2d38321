"""Typed failures raised by the identity workflows and the account store."""

from __future__ import annotations


class IdentityError(Exception):
    """Base class for caller-recoverable identity failures.

    ``message`` is safe to return to clients; ``status_code`` is the HTTP
    status the boundary layer answers with.
    """

    status_code: int = 400
    message: str = "identity request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class UsernameTaken(IdentityError):
    status_code = 400
    message = "username not available"


class AlreadyRegistered(IdentityError):
    status_code = 400
    message = "account already exists and is verified"


class AccountNotFound(IdentityError):
    status_code = 404
    message = "no account found for these credentials"


class InvalidCredentials(IdentityError):
    status_code = 401
    message = "please check the password"


class TokenRejected(IdentityError):
    """Any token failure; the cause is deliberately not exposed."""

    status_code = 403
    message = "invalid or expired token"


class StorageUnavailableError(Exception):
    """Raised when the backing database cannot serve a request."""


class StaleAccountError(Exception):
    """A conditional write found the account no longer in the expected state."""


class DuplicateAccountError(Exception):
    """An insert collided with an existing username or email."""

    def __init__(self, field: str) -> None:
        super().__init__(f"duplicate {field}")
        self.field = field
