import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping

import aiosqlite

from imgbed.config import Settings
from imgbed.db.models import StorageType
from imgbed.db.repositories.user_settings import get_setting
from imgbed.errors import ConfigurationError
from imgbed.storage.backends import StorageBackend
from imgbed.storage.naming import extension_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    url: str
    key: str
    blob_ref: str
    storage_type: StorageType
    relay_message_id: int
    custom_suffix: str | None = None


class StorageRouter:
    """Chooses a backend for an upload, names the blob and writes it.

    Metadata rows are the caller's job; the router only reads the uploader's
    preference.
    """

    def __init__(
        self,
        settings: Settings,
        backends: Mapping[StorageType, StorageBackend],
        clock: Callable[[], float] = time.time,
    ) -> None:
        if StorageType.RELAY not in backends:
            raise ConfigurationError("the relay backend is always required")
        self._settings = settings
        self._backends = dict(backends)
        self._clock = clock
        self._last_stamp = 0

    def backend(self, storage_type: StorageType) -> StorageBackend | None:
        return self._backends.get(storage_type)

    def _next_stamp(self) -> int:
        # Millisecond stamps are the only uniqueness source for generated keys;
        # keep them strictly increasing within this process.
        stamp = int(self._clock() * 1000)
        if stamp <= self._last_stamp:
            stamp = self._last_stamp + 1
        self._last_stamp = stamp
        return stamp

    def make_key(self, file_name: str | None, mime_type: str | None, custom_suffix: str | None = None) -> str:
        stem = custom_suffix or str(self._next_stamp())
        return f"{stem}.{extension_for(file_name, mime_type)}"

    async def store(
        self,
        db: aiosqlite.Connection,
        data: bytes,
        file_name: str | None,
        mime_type: str,
        uploader_chat_id: str,
    ) -> StoredBlob:
        setting = await get_setting(db, uploader_chat_id)
        preferred = setting.storage_type if setting else self._settings.default_storage
        custom_suffix = setting.custom_suffix if setting else None

        key = self.make_key(file_name, mime_type, custom_suffix)
        storage_type = preferred
        handle = None

        if preferred is StorageType.OBJECT:
            backend = self._backends.get(StorageType.OBJECT)
            if backend is None:
                logger.warning("Object backend is not configured, storing %s via relay", key)
            else:
                try:
                    handle = await backend.put(key, data, file_name or key, mime_type)
                except Exception:
                    logger.warning("Object store put failed for %s, falling back to relay", key, exc_info=True)

        if handle is None:
            storage_type = StorageType.RELAY
            handle = await self._backends[StorageType.RELAY].put(key, data, file_name or key, mime_type)

        logger.info("Stored %s via %s backend for chat %s", key, storage_type.value, uploader_chat_id)
        return StoredBlob(
            url=self._settings.public_url(key),
            key=key,
            blob_ref=handle.blob_ref,
            storage_type=storage_type,
            relay_message_id=handle.relay_message_id,
            custom_suffix=custom_suffix,
        )
