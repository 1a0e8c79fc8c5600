"""SQLite-backed persistence for accounts and resource documents."""
from __future__ import annotations

import json
import secrets
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .models import Account, Record, Role
from .passwords import PasswordHasher


class DuplicateEmailError(ValueError):
    """Raised when an account with the same email already exists."""


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _generate_id() -> str:
    return secrets.token_hex(12)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class Database:
    """Simple wrapper around SQLite for persisting accounts and documents.

    Each public method opens its own connection, so an instance can be shared
    between concurrent requests.
    """

    def __init__(
        self,
        path: Path,
        *,
        hasher: Optional[PasswordHasher] = None,
        timeout: float = 5.0,
    ) -> None:
        _ensure_directory(path)
        self._path = path
        self._hasher = hasher or PasswordHasher()
        self._timeout = timeout

    @property
    def path(self) -> Path:
        return self._path

    @property
    def hasher(self) -> PasswordHasher:
        return self._hasher

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, timeout=self._timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    name TEXT,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'user',
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS documents (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    collection TEXT NOT NULL,
                    body TEXT NOT NULL,
                    created_by TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection, seq);
                """
            )

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------
    def create_account(
        self,
        name: Optional[str],
        email: str,
        password: str,
        *,
        role: Role = Role.USER,
    ) -> Account:
        """Create a new account, hashing ``password`` before it is stored."""

        normalized_email = normalize_email(email) if email else ""
        if not normalized_email:
            raise ValueError("Email must not be empty")
        if not password:
            raise ValueError("Password must not be empty")

        normalized_name = name.strip() if name else None
        password_hash = self._hasher.hash(password)
        account_id = _generate_id()
        created_at = _current_timestamp()

        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO accounts (id, name, email, password_hash, role, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        account_id,
                        normalized_name or None,
                        normalized_email,
                        password_hash,
                        Role(role).value,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateEmailError("An account with that email already exists") from exc

        return Account(
            id=account_id,
            name=normalized_name or None,
            email=normalized_email,
            role=Role(role),
            created_at=created_at,
        )

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def get_account_by_email(self, email: str) -> Optional[Account]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE email = ?",
                (normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def authenticate_account(self, email: str, password: str) -> Optional[Account]:
        """Return the account when ``password`` matches, upgrading weak hashes."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE email = ?",
                (normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        stored_hash = row["password_hash"]
        if not stored_hash or not self._hasher.verify(password, stored_hash):
            return None

        if self._hasher.needs_update(stored_hash):
            self._set_password_hash(str(row["id"]), self._hasher.hash(password))

        return self._row_to_account(row)

    def set_account_role(self, account_id: str, role: Role) -> Optional[Account]:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE accounts SET role = ? WHERE id = ?",
                (Role(role).value, account_id),
            )
            if cursor.rowcount == 0:
                return None
        return self.get_account(account_id)

    def list_accounts(self, *, offset: int = 0, limit: int = 50) -> List[Account]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM accounts ORDER BY seq DESC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [self._row_to_account(row) for row in rows]

    def count_accounts(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM accounts").fetchone()
        return int(row[0])

    def _set_password_hash(self, account_id: str, password_hash: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE accounts SET password_hash = ? WHERE id = ?",
                (password_hash, account_id),
            )

    # ------------------------------------------------------------------
    # Document collections
    # ------------------------------------------------------------------
    def create_record(
        self,
        collection: str,
        data: Mapping[str, Any],
        *,
        created_by: Optional[str] = None,
    ) -> Record:
        record_id = _generate_id()
        created_at = _current_timestamp()
        serialized_created = _serialize_datetime(created_at)

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO documents (id, collection, body, created_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    collection,
                    json.dumps(dict(data)),
                    created_by,
                    serialized_created,
                    serialized_created,
                ),
            )

        return Record(
            id=record_id,
            collection=collection,
            data=dict(data),
            created_by=created_by,
            created_at=created_at,
            updated_at=created_at,
        )

    def get_record(self, collection: str, record_id: str) -> Optional[Record]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE collection = ? AND id = ?",
                (collection, record_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def list_records(self, collection: str, *, offset: int = 0, limit: int = 50) -> List[Record]:
        """Return records newest first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM documents
                 WHERE collection = ?
                 ORDER BY seq DESC
                 LIMIT ? OFFSET ?
                """,
                (collection, limit, offset),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count_records(self, collection: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM documents WHERE collection = ?",
                (collection,),
            ).fetchone()
        return int(row[0])

    def update_record(
        self,
        collection: str,
        record_id: str,
        **fields: Any,
    ) -> Optional[Record]:
        """Merge ``fields`` into an existing record."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE collection = ? AND id = ?",
                (collection, record_id),
            ).fetchone()
            if row is None:
                return None
            if not fields:
                return self._row_to_record(row)

            body: Dict[str, Any] = json.loads(row["body"])
            body.update(fields)
            conn.execute(
                """
                UPDATE documents SET body = ?, updated_at = ?
                 WHERE collection = ? AND id = ?
                """,
                (json.dumps(body), _serialize_datetime(_current_timestamp()), collection, record_id),
            )

        return self.get_record(collection, record_id)

    def delete_record(self, collection: str, record_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, record_id),
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(
            id=str(row["id"]),
            name=row["name"],
            email=str(row["email"]),
            role=Role(str(row["role"])),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_record(self, row: sqlite3.Row) -> Record:
        return Record(
            id=str(row["id"]),
            collection=str(row["collection"]),
            data=json.loads(row["body"]),
            created_by=row["created_by"],
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


__all__ = ["Database", "DuplicateEmailError", "normalize_email"]
