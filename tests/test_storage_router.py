"""Tests for naming and the storage router."""
from datetime import datetime

import pytest
from aiogram.types import Chat, Document, Message, PhotoSize

from imgbed.db.models import StorageType
from imgbed.db.repositories.user_settings import get_or_create_setting, update_setting
from imgbed.errors import RelayResponseError, ValidationError
from imgbed.storage.naming import CoarseType, coarse_type, extension_for, normalize_suffix, resolve_mime
from imgbed.storage.relay import TelegramRelay
from imgbed.storage.router import StorageRouter


def test_extension_prefers_file_name_then_mime():
    assert extension_for("Report.PDF", "image/png") == "pdf"
    assert extension_for("no-extension", "image/jpeg") == "jpg"
    assert extension_for(None, "application/x-unknown-thing") == "bin"


def test_resolve_mime_falls_back_to_extension():
    assert resolve_mime("clip.mp4", "application/octet-stream") == "video/mp4"
    assert resolve_mime("clip.mp4", "image/gif; charset=binary") == "image/gif"


def test_coarse_type():
    assert coarse_type("image/webp") is CoarseType.PHOTO
    assert coarse_type("video/mp4") is CoarseType.VIDEO
    assert coarse_type("audio/ogg") is CoarseType.AUDIO
    assert coarse_type("application/pdf") is CoarseType.DOCUMENT


@pytest.mark.parametrize("text", ["none", "NONE", "无", "  "])
def test_normalize_suffix_clears(text):
    assert normalize_suffix(text) is None


def test_normalize_suffix_rejects_path_characters():
    assert normalize_suffix(" logo ") == "logo"
    with pytest.raises(ValidationError):
        normalize_suffix("a/b")


def test_generated_keys_strictly_increase_on_a_frozen_clock(settings, ctx):
    router = StorageRouter(settings, ctx.backends, clock=lambda: 1700000000.0)
    keys = [router.make_key("a.png", "image/png") for _ in range(3)]
    assert keys == ["1700000000000.png", "1700000000001.png", "1700000000002.png"]


@pytest.mark.asyncio
async def test_store_prefers_object_backend(db, ctx, object_store, relay):
    await get_or_create_setting(db, "42", StorageType.OBJECT)

    stored = await ctx.router.store(db, b"\x89PNG data", "cat.png", "image/png", "42")

    assert stored.storage_type is StorageType.OBJECT
    assert stored.relay_message_id == 0
    assert stored.blob_ref == stored.key
    assert stored.url == f"https://img.example.com/{stored.key}"
    assert object_store.objects[stored.key].body == b"\x89PNG data"
    assert relay.sent == []


@pytest.mark.asyncio
async def test_store_falls_back_to_relay_when_object_put_fails(db, ctx, object_store, relay):
    object_store.fail_put = True

    stored = await ctx.router.store(db, b"bytes", "cat.png", "image/png", "42")

    assert stored.storage_type is StorageType.RELAY
    assert stored.blob_ref == "ref-1"
    assert stored.relay_message_id == 1001
    assert relay.sent == [("-1001", "cat.png", CoarseType.PHOTO)]


@pytest.mark.asyncio
async def test_store_uses_relay_preference_and_custom_suffix(db, ctx, relay):
    await get_or_create_setting(db, "42", StorageType.OBJECT)
    await update_setting(db, "42", storage_type=StorageType.RELAY, custom_suffix="logo")

    stored = await ctx.router.store(db, b"bytes", "brand.svg", "image/svg+xml", "42")

    assert stored.key == "logo.svg"
    assert stored.custom_suffix == "logo"
    assert stored.storage_type is StorageType.RELAY
    assert len(relay.sent) == 1


class _FakeBot:
    def __init__(self, message):
        self.message = message
        self.calls = []

    async def send_document(self, chat_id, document, **kwargs):
        self.calls.append("send_document")
        return self.message

    async def send_photo(self, chat_id, photo, **kwargs):
        self.calls.append("send_photo")
        return self.message


def _message(message_id=10, **attachments):
    return Message(
        message_id=message_id,
        date=datetime.now(),
        chat=Chat(id=-1001, type="channel"),
        **attachments,
    )


@pytest.mark.asyncio
async def test_relay_send_picks_method_by_coarse_type():
    photo = PhotoSize(file_id="small", file_unique_id="s", width=10, height=10)
    large = PhotoSize(file_id="large", file_unique_id="l", width=100, height=100)
    bot = _FakeBot(_message(photo=[photo, large]))

    receipt = await TelegramRelay(bot).send("-1001", b"data", "cat.png", CoarseType.PHOTO)

    assert bot.calls == ["send_photo"]
    assert receipt.attachment_ref == "large"
    assert receipt.message_id == 10


@pytest.mark.asyncio
async def test_relay_send_without_attachment_is_an_error():
    bot = _FakeBot(_message())
    with pytest.raises(RelayResponseError):
        await TelegramRelay(bot).send("-1001", b"data", "notes.txt", CoarseType.DOCUMENT)


@pytest.mark.asyncio
async def test_relay_send_without_message_id_is_an_error():
    bot = _FakeBot(_message(message_id=0, document=Document(file_id="doc", file_unique_id="d")))
    with pytest.raises(RelayResponseError):
        await TelegramRelay(bot).send("-1001", b"data", "notes.txt", CoarseType.DOCUMENT)
