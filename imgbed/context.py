from dataclasses import dataclass

from imgbed.config import Settings
from imgbed.db.models import StorageType
from imgbed.services.conversation import ConversationEngine
from imgbed.storage.backends import ObjectBackend, RelayBackend, StorageBackend
from imgbed.storage.object_store import ObjectStore
from imgbed.storage.relay import RelayClient
from imgbed.storage.resolver import RetrievalResolver
from imgbed.storage.router import StorageRouter


@dataclass
class AppContext:
    """Everything a request needs, built once at start and passed explicitly."""

    settings: Settings
    backends: dict[StorageType, StorageBackend]
    router: StorageRouter
    resolver: RetrievalResolver
    engine: ConversationEngine
    relay: RelayClient

    @classmethod
    def build(
        cls,
        settings: Settings,
        relay: RelayClient,
        object_store: ObjectStore | None = None,
    ) -> "AppContext":
        backends: dict[StorageType, StorageBackend] = {
            StorageType.RELAY: RelayBackend(relay, settings.storage_chat_id),
        }
        if object_store is not None:
            backends[StorageType.OBJECT] = ObjectBackend(object_store)
        return cls(
            settings=settings,
            backends=backends,
            router=StorageRouter(settings, backends),
            resolver=RetrievalResolver(settings, backends),
            engine=ConversationEngine(settings, object_available=object_store is not None),
            relay=relay,
        )

    def backend(self, storage_type: StorageType) -> StorageBackend | None:
        return self.backends.get(storage_type)

    async def close(self) -> None:
        close = getattr(self.relay, "close", None)
        if close is not None:
            await close()
