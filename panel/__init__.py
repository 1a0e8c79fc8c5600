"""Role-based CRUD panel: accounts, tasks, notes and file uploads."""

from __future__ import annotations

from typing import Any

from .database import Database
from .models import Role


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "Role",
    "create_app",
]
