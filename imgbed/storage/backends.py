"""The two interchangeable storage backends.

A blob reference only means something together with the backend that issued
it; callers always pick the backend from ``FileRecord.storage_type`` first.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

from imgbed.db.models import StorageType
from imgbed.errors import NotFoundError, UpstreamError
from imgbed.storage.naming import coarse_type
from imgbed.storage.object_store import ObjectStore
from imgbed.storage.relay import RelayClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlobHandle:
    blob_ref: str
    relay_message_id: int = 0


@dataclass(frozen=True)
class Blob:
    body: bytes | AsyncIterator[bytes]
    content_type: str | None
    # Object keys never change content once written; relay paths do expire.
    immutable: bool
    etag: str | None = None


class StorageBackend(ABC):
    storage_type: StorageType

    @abstractmethod
    async def put(self, key: str, data: bytes, file_name: str, mime_type: str) -> BlobHandle: ...

    @abstractmethod
    async def open(self, blob_ref: str) -> Blob | None: ...

    @abstractmethod
    async def delete(self, blob_ref: str, relay_message_id: int = 0) -> None: ...

    @abstractmethod
    async def rename(self, blob_ref: str, new_key: str, mime_type: str) -> str:
        """Move the blob under ``new_key`` if the backend can, returning the new reference."""


class ObjectBackend(StorageBackend):
    storage_type = StorageType.OBJECT

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    async def put(self, key: str, data: bytes, file_name: str, mime_type: str) -> BlobHandle:
        await self.store.put(key, data, mime_type)
        return BlobHandle(blob_ref=key)

    async def open(self, blob_ref: str) -> Blob | None:
        stored = await self.store.get(blob_ref)
        if stored is None:
            return None
        return Blob(body=stored.body, content_type=stored.content_type, immutable=True, etag=stored.etag)

    async def delete(self, blob_ref: str, relay_message_id: int = 0) -> None:
        await self.store.delete(blob_ref)

    async def rename(self, blob_ref: str, new_key: str, mime_type: str) -> str:
        if new_key == blob_ref:
            return blob_ref
        stored = await self.store.get(blob_ref)
        if stored is None:
            raise NotFoundError(f"Object {blob_ref} does not exist")
        await self.store.put(new_key, stored.body, mime_type or stored.content_type)
        await self.store.delete(blob_ref)
        return new_key


class RelayBackend(StorageBackend):
    storage_type = StorageType.RELAY

    def __init__(self, relay: RelayClient, destination: str) -> None:
        self.relay = relay
        self.destination = destination

    async def put(self, key: str, data: bytes, file_name: str, mime_type: str) -> BlobHandle:
        receipt = await self.relay.send(self.destination, data, file_name or key, coarse_type(mime_type))
        return BlobHandle(blob_ref=receipt.attachment_ref, relay_message_id=receipt.message_id)

    async def open(self, blob_ref: str) -> Blob | None:
        transient_url = await self.relay.resolve_current_path(blob_ref)
        body = await self.relay.open_stream(transient_url)
        return Blob(body=body, content_type=None, immutable=False)

    async def delete(self, blob_ref: str, relay_message_id: int = 0) -> None:
        if relay_message_id <= 0:
            logger.info("No storage message recorded for %s, nothing to delete", blob_ref)
            return
        try:
            await self.relay.delete_message(self.destination, relay_message_id)
        except UpstreamError:
            # Old storage messages can no longer be deleted by bots; the metadata still goes.
            logger.warning("Could not delete storage message %s", relay_message_id, exc_info=True)

    async def rename(self, blob_ref: str, new_key: str, mime_type: str) -> str:
        return blob_ref
