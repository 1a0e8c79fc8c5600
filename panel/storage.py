"""On-disk storage for uploaded files and the upload/download routes."""
from __future__ import annotations

import hashlib
import logging
import secrets
from pathlib import Path
from typing import Optional, Tuple

import anyio
from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from .database import Database
from .errors import InternalError, NotFound, PayloadTooLarge
from .models import StoredFile
from .security import AccessGate, Identity

logger = logging.getLogger("panel.storage")

FILES_COLLECTION = "files"
CHUNK_SIZE = 1024 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class UploadResponse(BaseModel):
    id: str


def _file_digest(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _safe_filename(raw: Optional[str]) -> str:
    # Browsers may send a full client-side path; keep only the final component.
    name = (raw or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    return name or "upload.bin"


class FileStorage:
    """Write uploads to server-chosen names below ``root``."""

    def __init__(self, root: Path, *, max_bytes: int, chunk_size: int = CHUNK_SIZE) -> None:
        if max_bytes < 1:
            raise ValueError("max_bytes must be positive")
        self._root = root
        self._max_bytes = max_bytes
        self._chunk_size = chunk_size

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, storage_name: str) -> Path:
        candidate = (self._root / storage_name).resolve(strict=False)
        if candidate.parent != self._root.resolve(strict=False):
            raise NotFound("File not found")
        return candidate

    async def save(self, upload: UploadFile) -> Tuple[str, int, str]:
        """Stream ``upload`` to disk and return ``(storage_name, size, sha256)``."""

        await anyio.to_thread.run_sync(lambda: self._root.mkdir(parents=True, exist_ok=True))
        storage_name = secrets.token_hex(16)
        destination = self._root / storage_name
        digest = hashlib.sha256()
        size = 0

        try:
            async with await anyio.open_file(destination, "wb") as handle:
                while True:
                    chunk = await upload.read(self._chunk_size)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self._max_bytes:
                        raise PayloadTooLarge(
                            f"Upload exceeds the limit of {self._max_bytes} bytes"
                        )
                    digest.update(chunk)
                    await handle.write(chunk)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise

        return storage_name, size, digest.hexdigest()

    def discard(self, storage_name: str) -> None:
        self.path_for(storage_name).unlink(missing_ok=True)

    async def verified_path(self, stored: StoredFile) -> Path:
        """Return the on-disk path after checking the recorded checksum."""

        path = self.path_for(stored.storage_path)
        if not await anyio.to_thread.run_sync(path.is_file):
            raise NotFound("File contents are no longer available")

        actual = await anyio.to_thread.run_sync(_file_digest, path)
        if actual != stored.sha256:
            logger.error("Checksum mismatch for file %s", stored.id)
            raise InternalError("Stored file failed its integrity check")
        return path


def register_file_routes(
    app: FastAPI,
    *,
    database: Database,
    storage: FileStorage,
    gate: AccessGate,
) -> None:
    """Expose ``/api/upload`` and ``/api/download/{file_id}``."""

    async def optional_identity(request: Request) -> Optional[Identity]:
        return await gate.identify(request)

    @app.post("/api/upload", response_model=UploadResponse)
    async def upload_file(
        file: UploadFile = File(...),
        identity: Optional[Identity] = Depends(optional_identity),
    ) -> UploadResponse:
        try:
            storage_name, size, sha256 = await storage.save(file)
        finally:
            await file.close()

        metadata = {
            "original_name": _safe_filename(file.filename),
            "size": size,
            "content_type": file.content_type or DEFAULT_CONTENT_TYPE,
            "storage_path": storage_name,
            "sha256": sha256,
        }
        created_by = identity.account_id if identity is not None else None
        try:
            record = await anyio.to_thread.run_sync(
                lambda: database.create_record(FILES_COLLECTION, metadata, created_by=created_by)
            )
        except BaseException:
            storage.discard(storage_name)
            raise
        logger.info("Stored upload %s (%d bytes)", record.id, size)
        return UploadResponse(id=record.id)

    @app.get("/api/download/{file_id}")
    async def download_file(file_id: str) -> FileResponse:
        record = await anyio.to_thread.run_sync(database.get_record, FILES_COLLECTION, file_id)
        if record is None:
            raise NotFound("File not found")
        stored = StoredFile.from_record(record)
        path = await storage.verified_path(stored)
        return FileResponse(
            path,
            media_type=stored.content_type,
            filename=stored.original_name,
        )


__all__ = ["FILES_COLLECTION", "FileStorage", "register_file_routes"]
