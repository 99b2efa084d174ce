"""Shared fixtures: a temporary database and in-memory storage backends."""
import pytest
import pytest_asyncio

from imgbed.config import Settings
from imgbed.context import AppContext
from imgbed.db.engine import get_db, init_db
from imgbed.errors import UpstreamError
from imgbed.storage.object_store import StoredObject
from imgbed.storage.relay import RelayReceipt


class FakeObjectStore:
    def __init__(self):
        self.objects: dict[str, StoredObject] = {}
        self.fail_put = False

    async def put(self, key, data, content_type):
        if self.fail_put:
            raise UpstreamError("object store is down")
        self.objects[key] = StoredObject(body=bytes(data), content_type=content_type, etag=f'"{key}"')

    async def get(self, key):
        return self.objects.get(key)

    async def delete(self, key):
        self.objects.pop(key, None)


class FakeRelay:
    """Relay whose download paths change whenever ``version`` is bumped."""

    base = "https://relay.test"

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.sent: list[tuple] = []
        self.deleted: list[int] = []
        self.version = 0

    async def send(self, destination, data, file_name, coarse):
        number = len(self.sent) + 1
        ref = f"ref-{number}"
        self.files[ref] = bytes(data)
        self.sent.append((destination, file_name, coarse))
        return RelayReceipt(attachment_ref=ref, message_id=1000 + number)

    async def resolve_current_path(self, attachment_ref):
        if attachment_ref not in self.files:
            raise UpstreamError(f"unknown attachment {attachment_ref}")
        return f"{self.base}/v{self.version}/{attachment_ref}"

    async def open_stream(self, transient_url):
        prefix = f"{self.base}/v{self.version}/"
        if not transient_url.startswith(prefix):
            raise UpstreamError("transient path expired")
        data = self.files[transient_url[len(prefix):]]

        async def chunks():
            yield data[:3]
            yield data[3:]

        return chunks()

    async def delete_message(self, destination, message_id):
        self.deleted.append(message_id)


async def read_body(body) -> bytes:
    if isinstance(body, bytes):
        return body
    return b"".join([chunk async for chunk in body])


@pytest.fixture
def settings(tmp_path):
    return Settings(
        telegram_bot_token="123456:TEST",
        domain="img.example.com",
        chat_ids=("42",),
        storage_chat_id="-1001",
        db_path=str(tmp_path / "imgbed.db"),
        s3_bucket="bucket",
        max_size_mb=1,
    )


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def ctx(settings, relay, object_store):
    return AppContext.build(settings, relay=relay, object_store=object_store)


@pytest_asyncio.fixture
async def db(settings):
    await init_db(settings.db_path)
    conn = await get_db(settings.db_path)
    yield conn
    await conn.close()
