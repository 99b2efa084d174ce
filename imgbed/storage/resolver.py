"""Maps a requested path back to bytes, whichever backend holds them."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Mapping

import aiosqlite

from imgbed.config import Settings
from imgbed.db.models import FileRecord, StorageType
from imgbed.db.repositories import files as files_repo
from imgbed.errors import UpstreamError
from imgbed.storage.backends import Blob, StorageBackend
from imgbed.storage.naming import content_type_for, is_inline

logger = logging.getLogger(__name__)

IMMUTABLE_CACHE = "public, max-age=31536000, immutable"
RELAY_CACHE = "no-cache"


class ResolutionKind(Enum):
    BLOB = "blob"
    REDIRECT = "redirect"
    NOT_FOUND = "not_found"


@dataclass
class Resolution:
    kind: ResolutionKind
    body: bytes | AsyncIterator[bytes] | None = None
    content_type: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    location: str | None = None
    record: FileRecord | None = None


class RetrievalResolver:
    def __init__(self, settings: Settings, backends: Mapping[StorageType, StorageBackend]) -> None:
        self._settings = settings
        self._backends = dict(backends)

    async def resolve(self, db: aiosqlite.Connection, requested_path: str) -> Resolution:
        path = requested_path.lstrip("/")
        if not path:
            return Resolution(ResolutionKind.NOT_FOUND)

        object_backend = self._backends.get(StorageType.OBJECT)
        if object_backend is not None:
            try:
                blob = await object_backend.open(path)
            except Exception:
                logger.warning("Direct object lookup failed for %s", path, exc_info=True)
                blob = None
            if blob is not None:
                return self._serve(blob, path, record=None)

        request_url = self._settings.public_url(path)
        record = (
            await files_repo.find_by_url(db, request_url)
            or await files_repo.find_by_blob_ref(db, path)
            or await files_repo.find_by_file_name(db, path.rsplit("/", 1)[-1])
        )
        if record is None:
            return Resolution(ResolutionKind.NOT_FOUND)

        upstream_error = None
        backend = self._backends.get(record.storage_type)
        if backend is None:
            logger.warning("No %s backend configured for %s", record.storage_type.value, record.url)
        else:
            try:
                blob = await backend.open(record.blob_ref)
            except UpstreamError as exc:
                logger.warning("Fetching %s from %s failed: %s", record.url, record.storage_type.value, exc)
                upstream_error = exc
                blob = None
            if blob is not None:
                return self._serve(blob, path, record=record)

        if record.url and record.url != request_url:
            return Resolution(ResolutionKind.REDIRECT, location=record.url, record=record)
        if upstream_error is not None:
            raise upstream_error
        return Resolution(ResolutionKind.NOT_FOUND, record=record)

    def _serve(self, blob: Blob, path: str, record: FileRecord | None) -> Resolution:
        content_type = (
            (record.mime_type if record else None)
            or blob.content_type
            or content_type_for(path.rsplit("/", 1)[-1])
        )
        headers = {
            "Access-Control-Allow-Origin": "*",
            "Cache-Control": IMMUTABLE_CACHE if blob.immutable else RELAY_CACHE,
        }
        if is_inline(content_type):
            headers["Content-Disposition"] = "inline"
        if blob.etag:
            headers["ETag"] = blob.etag
        return Resolution(
            ResolutionKind.BLOB,
            body=blob.body,
            content_type=content_type,
            headers=headers,
            record=record,
        )
