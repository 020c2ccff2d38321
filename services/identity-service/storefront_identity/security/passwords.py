"""Password hashing backed by Argon2id."""

from __future__ import annotations

from argon2 import PasswordHasher as Argon2Hasher
from argon2.exceptions import InvalidHashError, VerificationError

from ..config import Settings


class PasswordHasher:
    """Salted, slow, one-way password digests with an optional pepper."""

    def __init__(
        self,
        *,
        time_cost: int = 3,
        memory_cost: int = 64 * 1024,
        parallelism: int = 2,
        hash_len: int = 32,
        salt_len: int = 16,
        pepper: str = "",
    ) -> None:
        self._hasher = Argon2Hasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_len,
            salt_len=salt_len,
        )
        self._pepper = pepper or ""

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordHasher":
        return cls(
            time_cost=settings.password_time_cost,
            memory_cost=settings.password_memory_cost,
            parallelism=settings.password_parallelism,
            pepper=settings.password_pepper,
        )

    def hash(self, plaintext: str) -> str:
        return self._hasher.hash(self._with_pepper(plaintext))

    def verify(self, plaintext: str, digest: str) -> bool:
        """Return ``True`` only when ``plaintext`` produced ``digest``."""
        try:
            return self._hasher.verify(digest, self._with_pepper(plaintext))
        except (VerificationError, InvalidHashError):
            return False

    def _with_pepper(self, plaintext: str) -> str:
        return f"{plaintext}{self._pepper}"
