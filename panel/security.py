"""Bearer token authentication and role-based authorization."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import Forbidden, Unauthorized
from .models import ALL_ROLES, Role
from .tokens import TokenError, TokenService

logger = logging.getLogger("panel.security")


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, attached to ``request.state.identity``."""

    account_id: str
    role: Role


def _normalize_roles(roles: Iterable[Role | str]) -> FrozenSet[Role]:
    normalized = set()
    for role in roles:
        if isinstance(role, Role):
            normalized.add(role)
        else:
            normalized.add(Role.parse(str(role)))
    if not normalized:
        raise ValueError("At least one role must be permitted")
    return frozenset(normalized)


def is_permitted(role: Role, permitted: FrozenSet[Role]) -> bool:
    if role is Role.ADMIN:
        return Role.ADMIN in permitted
    if role is Role.EMPLOYEE:
        return Role.EMPLOYEE in permitted
    if role is Role.USER:
        return Role.USER in permitted
    raise AssertionError(f"Unhandled role {role!r}")


class AccessGate:
    """Authenticate bearer tokens and gate routes on the caller's role."""

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens
        self._bearer = HTTPBearer(auto_error=False)

    async def authenticate(self, request: Request) -> Identity:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise Unauthorized("Missing bearer token")

        try:
            claims = self._tokens.verify(credentials.credentials)
        except TokenError as exc:
            logger.info("Rejected bearer token on %s: %s", request.url.path, type(exc).__name__)
            raise Unauthorized("Invalid or expired token") from exc

        identity = Identity(account_id=claims.account_id, role=claims.role)
        request.state.identity = identity
        return identity

    async def identify(self, request: Request) -> Optional[Identity]:
        """Like :meth:`authenticate` but returns ``None`` for anonymous or invalid callers."""

        try:
            return await self.authenticate(request)
        except Unauthorized:
            return None

    def require(self, *roles: Role | str) -> Callable[..., Identity]:
        """Return a dependency admitting only callers whose role is in ``roles``.

        With no arguments every role is admitted, so only authentication applies.
        """

        permitted = _normalize_roles(roles) if roles else ALL_ROLES

        async def dependency(identity: Identity = Depends(self.authenticate)) -> Identity:
            if not is_permitted(identity.role, permitted):
                raise Forbidden()
            return identity

        return dependency


__all__ = ["AccessGate", "Identity", "is_permitted"]
