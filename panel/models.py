"""Domain models shared by the persistence and HTTP layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    """Closed set of account roles."""

    USER = "user"
    EMPLOYEE = "employee"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str) -> "Role":
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            allowed = ", ".join(role.value for role in cls)
            raise ValueError(f"Unknown role '{value}'. Expected one of: {allowed}") from exc


ALL_ROLES = frozenset(Role)


@dataclass(frozen=True)
class Account:
    """Represents an account stored in the panel database."""

    id: str
    name: Optional[str]
    email: str
    role: Role
    created_at: datetime


@dataclass(frozen=True)
class Record:
    """A document stored in one of the resource collections."""

    id: str
    collection: str
    data: Dict[str, Any]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id}
        payload.update(self.data)
        payload["created_by"] = self.created_by
        payload["created_at"] = self.created_at
        payload["updated_at"] = self.updated_at
        return payload


@dataclass(frozen=True)
class StoredFile:
    """Metadata for an uploaded file."""

    id: str
    original_name: str
    size: int
    content_type: str
    storage_path: str
    sha256: str
    created_by: Optional[str]
    created_at: datetime

    @staticmethod
    def from_record(record: Record) -> "StoredFile":
        data = record.data
        return StoredFile(
            id=record.id,
            original_name=str(data["original_name"]),
            size=int(data["size"]),
            content_type=str(data["content_type"]),
            storage_path=str(data["storage_path"]),
            sha256=str(data["sha256"]),
            created_by=record.created_by,
            created_at=record.created_at,
        )


__all__ = ["ALL_ROLES", "Account", "Record", "Role", "StoredFile"]
