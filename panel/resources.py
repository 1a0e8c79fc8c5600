"""CRUD routes for the task and note collections."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Type

from fastapi import Depends, FastAPI
from pydantic import BaseModel, Field, field_validator

from .database import Database
from .errors import NotFound
from .models import ALL_ROLES, Record, Role
from .security import AccessGate, Identity

logger = logging.getLogger("panel.resources")


def _strip_title(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    if not stripped:
        raise ValueError("title must not be empty")
    return stripped


class _TitledRequest(BaseModel):
    @field_validator("title", check_fields=False)
    @classmethod
    def _normalize_title(cls, value: Optional[str]) -> Optional[str]:
        return _strip_title(value)


class TaskCreateRequest(_TitledRequest):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    completed: bool = False


class TaskUpdateRequest(_TitledRequest):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    completed: Optional[bool] = None


class TaskResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    completed: bool = False
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TaskPage(BaseModel):
    items: List[TaskResponse]
    total: int
    offset: int
    limit: int


class NoteCreateRequest(_TitledRequest):
    title: str = Field(..., min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, max_length=20000)


class NoteUpdateRequest(_TitledRequest):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, max_length=20000)


class NoteResponse(BaseModel):
    id: str
    title: str
    content: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class NotePage(BaseModel):
    items: List[NoteResponse]
    total: int
    offset: int
    limit: int


class DeleteResponse(BaseModel):
    status: str = "deleted"
    id: str


@dataclass(frozen=True)
class ResourceDefinition:
    """Describes one collection exposed under ``/api/<name>``."""

    name: str
    label: str
    create_model: Type[BaseModel]
    update_model: Type[BaseModel]
    response_model: Type[BaseModel]
    page_model: Type[BaseModel]
    nullable_fields: FrozenSet[str] = frozenset()
    read_roles: FrozenSet[Role] = ALL_ROLES
    write_roles: FrozenSet[Role] = ALL_ROLES
    delete_roles: FrozenSet[Role] = ALL_ROLES

    def update_fields(self, payload: BaseModel) -> Dict[str, Any]:
        provided = payload.model_dump(exclude_unset=True)
        return {
            key: value
            for key, value in provided.items()
            if value is not None or key in self.nullable_fields
        }


TASKS = ResourceDefinition(
    name="tasks",
    label="Task",
    create_model=TaskCreateRequest,
    update_model=TaskUpdateRequest,
    response_model=TaskResponse,
    page_model=TaskPage,
    nullable_fields=frozenset({"description"}),
    delete_roles=frozenset({Role.EMPLOYEE, Role.ADMIN}),
)

NOTES = ResourceDefinition(
    name="notes",
    label="Note",
    create_model=NoteCreateRequest,
    update_model=NoteUpdateRequest,
    response_model=NoteResponse,
    page_model=NotePage,
    nullable_fields=frozenset({"content"}),
)

DEFAULT_RESOURCES = (TASKS, NOTES)


def register_resource_routes(
    app: FastAPI,
    definition: ResourceDefinition,
    *,
    database: Database,
    gate: AccessGate,
    pagination: Callable[..., Any],
) -> None:
    """Expose list/create/get/update/delete endpoints for one collection."""

    collection = definition.name
    base_path = f"/api/{collection}"
    CreateModel = definition.create_model
    UpdateModel = definition.update_model
    readers = gate.require(*definition.read_roles)
    writers = gate.require(*definition.write_roles)
    deleters = gate.require(*definition.delete_roles)

    def to_response(record: Record) -> BaseModel:
        return definition.response_model(**record.to_dict())

    def require_record(record_id: str) -> Record:
        record = database.get_record(collection, record_id)
        if record is None:
            raise NotFound(f"{definition.label} not found")
        return record

    @app.get(base_path, response_model=definition.page_model, name=f"list_{collection}")
    def list_records(
        page=Depends(pagination),
        identity: Identity = Depends(readers),
    ) -> Any:
        records = database.list_records(collection, offset=page.offset, limit=page.limit)
        return definition.page_model(
            items=[to_response(record) for record in records],
            total=database.count_records(collection),
            offset=page.offset,
            limit=page.limit,
        )

    @app.post(base_path, response_model=definition.response_model, name=f"create_{collection}")
    def create_record(
        payload: CreateModel,  # type: ignore[valid-type]
        identity: Identity = Depends(writers),
    ) -> Any:
        record = database.create_record(
            collection,
            payload.model_dump(),
            created_by=identity.account_id,
        )
        logger.info("Account %s created %s %s", identity.account_id, definition.label.lower(), record.id)
        return to_response(record)

    @app.get(f"{base_path}/{{record_id}}", response_model=definition.response_model, name=f"get_{collection}")
    def get_record(record_id: str, identity: Identity = Depends(readers)) -> Any:
        return to_response(require_record(record_id))

    @app.put(f"{base_path}/{{record_id}}", response_model=definition.response_model, name=f"update_{collection}")
    def update_record(
        record_id: str,
        payload: UpdateModel,  # type: ignore[valid-type]
        identity: Identity = Depends(writers),
    ) -> Any:
        record = database.update_record(collection, record_id, **definition.update_fields(payload))
        if record is None:
            raise NotFound(f"{definition.label} not found")
        return to_response(record)

    @app.delete(f"{base_path}/{{record_id}}", response_model=DeleteResponse, name=f"delete_{collection}")
    def delete_record(record_id: str, identity: Identity = Depends(deleters)) -> DeleteResponse:
        if not database.delete_record(collection, record_id):
            raise NotFound(f"{definition.label} not found")
        logger.info("Account %s deleted %s %s", identity.account_id, definition.label.lower(), record_id)
        return DeleteResponse(id=record_id)


__all__ = [
    "DEFAULT_RESOURCES",
    "NOTES",
    "TASKS",
    "ResourceDefinition",
    "register_resource_routes",
]
