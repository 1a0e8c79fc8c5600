"""HTTP API for registration, login, role dashboards and resource CRUD."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from fastapi import Depends, FastAPI, Query
from pydantic import BaseModel, Field, field_validator

from .config import Settings, load_settings
from .database import Database, DuplicateEmailError
from .errors import Conflict, NotFound, Unauthorized, ValidationError, install_error_handlers
from .models import Account, Role
from .passwords import PasswordHasher
from .resources import DEFAULT_RESOURCES, ResourceDefinition, register_resource_routes
from .security import AccessGate, Identity
from .storage import FileStorage, register_file_routes
from .tokens import TokenService

logger = logging.getLogger("panel.service")

MIN_PASSWORD_LENGTH = 8


def _normalize_email(value: str) -> str:
    stripped = value.strip().lower()
    local, _, domain = stripped.partition("@")
    if not local or not domain or " " in stripped:
        raise ValueError("email must be a valid address")
    return stripped


class RegisterRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=1024)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=254)
    password: str = Field(..., min_length=1, max_length=1024)


class AccountResponse(BaseModel):
    id: str
    name: Optional[str]
    email: str
    role: Role
    created_at: datetime


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    account: AccountResponse


class AccountPage(BaseModel):
    items: List[AccountResponse]
    total: int
    offset: int
    limit: int


class RoleUpdateRequest(BaseModel):
    role: Role


class DashboardResponse(BaseModel):
    dashboard: str
    message: str
    account_id: str
    role: Role


@dataclass(frozen=True)
class PageParams:
    offset: int
    limit: int


def account_to_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        name=account.name,
        email=account.email,
        role=account.role,
        created_at=account.created_at,
    )


def build_pagination(settings: Settings) -> Callable[..., PageParams]:
    """Return a dependency reading bounded ``offset``/``limit`` query parameters."""

    def pagination(
        offset: int = Query(default=0, ge=0),
        limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    ) -> PageParams:
        return PageParams(offset=offset, limit=limit)

    return pagination


def register_auth_routes(
    app: FastAPI,
    *,
    database: Database,
    tokens: TokenService,
    gate: AccessGate,
    token_ttl: int,
) -> None:
    """Expose registration, login and the caller's own account."""

    @app.post("/api/auth/register", response_model=AccountResponse)
    def register(request: RegisterRequest) -> AccountResponse:
        try:
            account = database.create_account(request.name, request.email, request.password)
        except DuplicateEmailError as exc:
            raise Conflict("An account with that email already exists") from exc
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        logger.info("Registered account %s", account.id)
        return account_to_response(account)

    @app.post("/api/auth/login", response_model=LoginResponse)
    def login(request: LoginRequest) -> LoginResponse:
        account = database.authenticate_account(request.email, request.password)
        if account is None:
            logger.warning("Failed login for %s", request.email.strip().lower())
            raise Unauthorized("Invalid email or password")

        return LoginResponse(
            token=tokens.issue(account.id, account.role),
            expires_in=token_ttl or None,
            account=account_to_response(account),
        )

    @app.get("/api/auth/me", response_model=AccountResponse)
    def me(identity: Identity = Depends(gate.require())) -> AccountResponse:
        account = database.get_account(identity.account_id)
        if account is None:
            raise Unauthorized("Account no longer exists")
        return account_to_response(account)


_DASHBOARDS: Dict[str, Sequence[Role]] = {
    "user": (Role.USER, Role.EMPLOYEE, Role.ADMIN),
    "employee": (Role.EMPLOYEE, Role.ADMIN),
    "admin": (Role.ADMIN,),
}


def _dashboard_view(dashboard: str, guard: Callable[..., Identity]) -> Callable[..., DashboardResponse]:
    def view(identity: Identity = Depends(guard)) -> DashboardResponse:
        return DashboardResponse(
            dashboard=dashboard,
            message=f"Welcome to the {dashboard} dashboard",
            account_id=identity.account_id,
            role=identity.role,
        )

    return view


def register_dashboard_routes(app: FastAPI, *, gate: AccessGate) -> None:
    """Expose one greeting endpoint per role tier."""

    for dashboard, roles in _DASHBOARDS.items():
        app.add_api_route(
            f"/api/dashboard/{dashboard}",
            _dashboard_view(dashboard, gate.require(*roles)),
            methods=["GET"],
            response_model=DashboardResponse,
            name=f"{dashboard}_dashboard",
        )


def register_admin_routes(
    app: FastAPI,
    *,
    database: Database,
    gate: AccessGate,
    pagination: Callable[..., PageParams],
) -> None:
    """Expose account administration to administrators."""

    admins = gate.require(Role.ADMIN)

    @app.get("/api/admin/accounts", response_model=AccountPage)
    def list_accounts(
        page: PageParams = Depends(pagination),
        identity: Identity = Depends(admins),
    ) -> AccountPage:
        accounts = database.list_accounts(offset=page.offset, limit=page.limit)
        return AccountPage(
            items=[account_to_response(account) for account in accounts],
            total=database.count_accounts(),
            offset=page.offset,
            limit=page.limit,
        )

    @app.put("/api/admin/accounts/{account_id}/role", response_model=AccountResponse)
    def update_role(
        account_id: str,
        request: RoleUpdateRequest,
        identity: Identity = Depends(admins),
    ) -> AccountResponse:
        account = database.set_account_role(account_id, request.role)
        if account is None:
            raise NotFound("Account not found")
        logger.info(
            "Administrator %s set role of account %s to %s",
            identity.account_id,
            account.id,
            account.role.value,
        )
        return account_to_response(account)


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    resources: Sequence[ResourceDefinition] = DEFAULT_RESOURCES,
) -> FastAPI:
    """Instantiate the FastAPI application."""

    config = settings or load_settings()

    db = database or Database(
        config.database_path,
        hasher=PasswordHasher(rounds=config.password_rounds),
        timeout=config.db_timeout,
    )
    db.initialize()

    tokens = TokenService(config.token_secret, ttl=config.token_ttl)
    gate = AccessGate(tokens)
    storage = FileStorage(config.upload_dir, max_bytes=config.max_upload_bytes)
    pagination = build_pagination(config)

    app = FastAPI(
        title="CRUD Panel API",
        version="0.1.0",
        description="Role-based authentication with task, note and file collections.",
    )
    app.state.settings = config
    app.state.database = db
    app.state.tokens = tokens
    app.state.storage = storage

    install_error_handlers(app)

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    register_auth_routes(app, database=db, tokens=tokens, gate=gate, token_ttl=config.token_ttl)
    register_dashboard_routes(app, gate=gate)
    register_admin_routes(app, database=db, gate=gate, pagination=pagination)
    for definition in resources:
        register_resource_routes(app, definition, database=db, gate=gate, pagination=pagination)
    register_file_routes(app, database=db, storage=storage, gate=gate)

    return app


__all__ = ["create_app"]
