"""Tests for retrieval of stored files, whichever backend holds them."""
import pytest

from imgbed.db.models import StorageType
from imgbed.errors import UpstreamError
from imgbed.services.files import delete_file, rename_with_suffix, upload_file
from imgbed.storage.resolver import IMMUTABLE_CACHE, RELAY_CACHE, ResolutionKind

from conftest import read_body


def _key(record):
    return record.url.rsplit("/", 1)[-1]


@pytest.mark.asyncio
async def test_object_file_round_trip(db, ctx):
    record = await upload_file(
        db, ctx, data=b"\x89PNG bytes", file_name="cat.png", mime_type="image/png", chat_id="42"
    )

    resolution = await ctx.resolver.resolve(db, "/" + _key(record))

    assert resolution.kind is ResolutionKind.BLOB
    assert await read_body(resolution.body) == b"\x89PNG bytes"
    assert resolution.content_type == "image/png"
    assert resolution.headers["Cache-Control"] == IMMUTABLE_CACHE
    assert resolution.headers["Access-Control-Allow-Origin"] == "*"
    assert resolution.headers["Content-Disposition"] == "inline"


@pytest.mark.asyncio
async def test_relay_file_resolves_a_fresh_path_each_time(db, ctx, object_store, relay):
    object_store.fail_put = True
    record = await upload_file(
        db, ctx, data=b"relay bytes", file_name="notes.pdf", mime_type="application/pdf", chat_id="42"
    )
    assert record.storage_type is StorageType.RELAY

    first = await ctx.resolver.resolve(db, _key(record))
    assert await read_body(first.body) == b"relay bytes"
    assert first.headers["Cache-Control"] == RELAY_CACHE
    assert "Content-Disposition" not in first.headers

    # The previous transient path is no longer valid.
    relay.version += 1
    second = await ctx.resolver.resolve(db, _key(record))
    assert await read_body(second.body) == b"relay bytes"
    assert second.content_type == "application/pdf"


@pytest.mark.asyncio
async def test_lookup_by_original_file_name(db, ctx):
    await upload_file(db, ctx, data=b"gif", file_name="party.gif", mime_type="image/gif", chat_id="42")

    resolution = await ctx.resolver.resolve(db, "party.gif")

    assert resolution.kind is ResolutionKind.BLOB
    assert await read_body(resolution.body) == b"gif"


@pytest.mark.asyncio
async def test_redirects_to_canonical_url_when_blob_is_unreachable(db, ctx, object_store, relay):
    object_store.fail_put = True
    record = await upload_file(db, ctx, data=b"x", file_name="a.png", mime_type="image/png", chat_id="42")
    relay.files.clear()

    resolution = await ctx.resolver.resolve(db, record.blob_ref)

    assert resolution.kind is ResolutionKind.REDIRECT
    assert resolution.location == record.url


@pytest.mark.asyncio
async def test_upstream_failure_on_canonical_url_propagates(db, ctx, object_store, relay):
    object_store.fail_put = True
    record = await upload_file(db, ctx, data=b"x", file_name="a.png", mime_type="image/png", chat_id="42")
    relay.files.clear()

    with pytest.raises(UpstreamError):
        await ctx.resolver.resolve(db, _key(record))


@pytest.mark.asyncio
async def test_unknown_path_is_not_found(db, ctx):
    resolution = await ctx.resolver.resolve(db, "/nothing-here.png")
    assert resolution.kind is ResolutionKind.NOT_FOUND


@pytest.mark.asyncio
async def test_rename_moves_object_and_old_url_stops_resolving(db, ctx, object_store):
    record = await upload_file(db, ctx, data=b"logo", file_name="brand.png", mime_type="image/png", chat_id="42")

    old, new = await rename_with_suffix(db, ctx, record.url, "logo")

    assert new.url == "https://img.example.com/logo.png"
    assert new.blob_ref == "logo.png"
    assert _key(old) not in object_store.objects
    assert (await ctx.resolver.resolve(db, "logo.png")).kind is ResolutionKind.BLOB
    assert (await ctx.resolver.resolve(db, _key(old))).kind is ResolutionKind.NOT_FOUND


@pytest.mark.asyncio
async def test_rename_relay_file_keeps_attachment_reference(db, ctx, object_store):
    object_store.fail_put = True
    record = await upload_file(db, ctx, data=b"doc", file_name="a.txt", mime_type="text/plain", chat_id="42")

    _, new = await rename_with_suffix(db, ctx, record.url, "readme")

    assert new.url == "https://img.example.com/readme.txt"
    assert new.blob_ref == record.blob_ref
    resolution = await ctx.resolver.resolve(db, "readme.txt")
    assert await read_body(resolution.body) == b"doc"


@pytest.mark.asyncio
async def test_delete_relay_file_removes_storage_message(db, ctx, object_store, relay):
    object_store.fail_put = True
    record = await upload_file(db, ctx, data=b"x", file_name="a.png", mime_type="image/png", chat_id="42")

    await delete_file(db, ctx, record)

    assert relay.deleted == [record.relay_message_id]
    assert (await ctx.resolver.resolve(db, _key(record))).kind is ResolutionKind.NOT_FOUND
