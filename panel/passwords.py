"""Password hashing helpers."""
from __future__ import annotations

from passlib.context import CryptContext

DEFAULT_ROUNDS = 600_000


class PasswordHasher:
    """Salted PBKDF2-SHA256 hashing through passlib.

    Hashes use the modular crypt format (``$pbkdf2-sha256$rounds$salt$digest``)
    so the salt and work factor travel with the stored value.
    """

    def __init__(self, *, rounds: int = DEFAULT_ROUNDS) -> None:
        if rounds < 1:
            raise ValueError("rounds must be positive")
        self._rounds = rounds
        self._context = CryptContext(
            schemes=["pbkdf2_sha256"],
            deprecated="auto",
            pbkdf2_sha256__default_rounds=rounds,
            pbkdf2_sha256__min_rounds=rounds,
        )

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, password: str) -> str:
        if not isinstance(password, str) or not password:
            raise ValueError("Password must not be empty")
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        """Return ``True`` only when ``password`` matches ``hashed``."""

        if not password or not hashed:
            return False
        try:
            return bool(self._context.verify(password, hashed))
        except (ValueError, TypeError):
            return False

    def needs_update(self, hashed: str) -> bool:
        try:
            return bool(self._context.needs_update(hashed))
        except (ValueError, TypeError):
            return False


__all__ = ["DEFAULT_ROUNDS", "PasswordHasher"]
