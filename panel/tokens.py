"""Signed bearer tokens asserting an account identity and role."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from .models import Role

ALGORITHM = "HS256"


class TokenError(Exception):
    """Base class for token verification failures."""


class InvalidSignature(TokenError):
    """The token signature does not match its contents."""


class MalformedToken(TokenError):
    """The token cannot be parsed or lacks required claims."""


class ExpiredToken(TokenError):
    """The token is past its expiry time."""


@dataclass(frozen=True)
class TokenClaims:
    account_id: str
    role: Role


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issue and verify HS256 tokens signed with the process-wide secret.

    ``ttl`` is in seconds; ``0`` issues tokens without an ``exp`` claim.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl: int = 0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret:
            raise ValueError("A token signing secret is required")
        if ttl < 0:
            raise ValueError("ttl must not be negative")
        self._secret = secret
        self._ttl: Optional[timedelta] = timedelta(seconds=ttl) if ttl else None
        self._clock = clock

    def __repr__(self) -> str:
        return f"TokenService(ttl={self._ttl!r})"

    @property
    def expires(self) -> bool:
        return self._ttl is not None

    def issue(self, account_id: str, role: Role) -> str:
        if not account_id:
            raise ValueError("account_id must not be empty")
        issued_at = self._clock()
        payload = {
            "sub": account_id,
            "role": Role(role).value,
            "iat": issued_at,
        }
        if self._ttl is not None:
            payload["exp"] = issued_at + self._ttl
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        if not isinstance(token, str) or not token:
            raise MalformedToken("Token is empty")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "role", "iat"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredToken("Token has expired") from exc
        except jwt.InvalidSignatureError as exc:
            raise InvalidSignature("Token signature does not match") from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedToken("Token could not be decoded") from exc

        account_id = payload.get("sub")
        if not isinstance(account_id, str) or not account_id:
            raise MalformedToken("Token subject is invalid")
        try:
            role = Role(payload.get("role"))
        except ValueError as exc:
            raise MalformedToken("Token role is not recognised") from exc

        return TokenClaims(account_id=account_id, role=role)


__all__ = [
    "ExpiredToken",
    "InvalidSignature",
    "MalformedToken",
    "TokenClaims",
    "TokenError",
    "TokenService",
]
