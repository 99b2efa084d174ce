"""HTTP surface tests against an in-process aiohttp server."""
import asyncio
import logging
import warnings

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from imgbed.db.engine import get_db
from imgbed.errors import SchemaError
from imgbed.loader import create_bot, create_dispatcher
from imgbed.web import app as web_app
from imgbed.web.app import create_app
from imgbed.web.middlewares import BOOT_KEY, CTX_KEY


@pytest_asyncio.fixture
async def client(ctx):
    async with TestClient(TestServer(create_app(ctx))) as client:
        yield client


def _form(data=b"\x89PNG image", filename="cat.png", content_type="image/png", **fields):
    form = aiohttp.FormData()
    form.add_field("file", data, filename=filename, content_type=content_type)
    for name, value in fields.items():
        form.add_field(name, value)
    return form


async def _upload(client, **kwargs):
    resp = await client.post("/upload", data=_form(**kwargs))
    assert resp.status == 200, await resp.text()
    body = await resp.json()
    assert body["status"] == 1
    return body["url"]


def _path(url):
    return "/" + url.rsplit("/", 1)[-1]


@pytest.mark.asyncio
async def test_config(client):
    resp = await client.get("/config")
    assert await resp.json() == {"maxSizeMB": 1}


@pytest.mark.asyncio
async def test_upload_then_fetch(client):
    url = await _upload(client)
    assert url.startswith("https://img.example.com/") and url.endswith(".png")

    resp = await client.get(_path(url))

    assert resp.status == 200
    assert await resp.read() == b"\x89PNG image"
    assert resp.headers["Content-Type"] == "image/png"
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert "immutable" in resp.headers["Cache-Control"]


@pytest.mark.asyncio
async def test_relay_upload_streams_back(client, relay):
    url = await _upload(client, data=b"hello relay", filename="a.txt", content_type="text/plain", storage_type="relay")

    resp = await client.get(_path(url))

    assert await resp.read() == b"hello relay"
    assert resp.headers["Cache-Control"] == "no-cache"
    assert len(relay.sent) == 1


@pytest.mark.asyncio
async def test_upload_without_file_is_rejected(client):
    form = aiohttp.FormData()
    form.add_field("category", "1")
    resp = await client.post("/upload", data=form)

    assert resp.status == 400
    assert (await resp.json())["status"] == 0


@pytest.mark.asyncio
async def test_oversized_upload_is_rejected(client):
    resp = await client.post("/upload", data=_form(data=b"x" * (1024 * 1024 + 10)))
    assert resp.status == 413


@pytest.mark.asyncio
async def test_unknown_path_is_404(client):
    resp = await client.get("/missing.png")
    assert resp.status == 404
    assert await resp.json() == {"status": 0, "message": "File not found"}


@pytest.mark.asyncio
async def test_redirect_to_canonical_url(client, relay):
    await _upload(client, storage_type="relay")
    relay.files.clear()

    resp = await client.get("/ref-1", allow_redirects=False)

    assert resp.status == 302
    assert resp.headers["Location"].startswith("https://img.example.com/")


@pytest.mark.asyncio
async def test_update_suffix(client):
    url = await _upload(client)

    resp = await client.post("/update-suffix", json={"url": url, "suffix": "logo"})
    body = await resp.json()

    assert body["data"] == {"oldUrl": url, "newUrl": "https://img.example.com/logo.png"}
    assert (await client.get("/logo.png")).status == 200
    assert (await client.get(_path(url))).status == 404


@pytest.mark.asyncio
async def test_update_suffix_requires_known_file(client):
    resp = await client.post("/update-suffix", json={"url": "https://img.example.com/x.png", "suffix": "y"})
    assert resp.status == 404


@pytest.mark.asyncio
async def test_files_listing_and_delete(client, object_store):
    url = await _upload(client)
    files = (await (await client.get("/files")).json())["files"]
    assert [f["url"] for f in files] == [url]
    assert files[0]["category_name"] == "Default"

    resp = await client.post("/delete", json={"id": files[0]["id"]})

    assert (await resp.json())["status"] == 1
    assert object_store.objects == {}
    assert (await client.get(_path(url))).status == 404
    assert (await client.post("/delete", json={"id": files[0]["id"]})).status == 404


@pytest.mark.asyncio
async def test_delete_multiple_reports_missing(client):
    first = await _upload(client)
    second = await _upload(client)

    resp = await client.post("/delete-multiple", json={"urls": [first, second, "https://img.example.com/nope.png"]})
    body = await resp.json()

    assert body["deleted"] == [first, second]
    assert body["missing"] == ["https://img.example.com/nope.png"]


@pytest.mark.asyncio
async def test_search(client):
    await _upload(client, filename="holiday.png")
    await _upload(client, filename="work.png")

    body = await (await client.post("/search", json={"query": "holi"})).json()

    assert [f["file_name"] for f in body["files"]] == ["holiday.png"]


@pytest.mark.asyncio
async def test_category_endpoints(client):
    resp = await client.post("/create-category", json={"name": "Pets"})
    pets = (await resp.json())["category"]

    duplicate = await client.post("/create-category", json={"name": "Pets"})
    assert duplicate.status == 400

    await _upload(client, category=str(pets["id"]))
    listed = await (await client.get("/files", params={"category": pets["id"]})).json()
    assert len(listed["files"]) == 1

    resp = await client.post("/delete-category", json={"id": pets["id"]})
    assert (await resp.json())["status"] == 1

    names = [c["name"] for c in (await (await client.get("/categories")).json())["categories"]]
    assert names == ["Default"]
    files = (await (await client.get("/files")).json())["files"]
    assert files[0]["category_id"] is None


@pytest.mark.asyncio
async def test_malformed_json_is_rejected(client):
    resp = await client.post("/delete", data=b"{not json", headers={"Content-Type": "application/json"})
    assert resp.status == 400


@pytest.mark.asyncio
async def test_boot_failure_refuses_requests(ctx, monkeypatch):
    async def broken_init(db_path):
        raise SchemaError("table files still lacks ['url']")

    monkeypatch.setattr(web_app, "init_db", broken_init)

    async with TestClient(TestServer(create_app(ctx))) as client:
        resp = await client.get("/config")
        body = await resp.json()
        webhook = await client.post("/webhook", json={"update_id": 1})

    assert resp.status == 500
    assert body["status"] == 0
    assert "files" in body["message"]
    assert webhook.status == 200


@pytest.mark.asyncio
async def test_upload_to_unknown_category_is_rejected(client, ctx):
    resp = await client.post("/upload", data=_form(category="999"))
    body = await resp.json()

    assert resp.status == 400
    assert body["status"] == 0
    assert "999" in body["message"]
    db = await get_db(ctx.settings.db_path)
    try:
        cursor = await db.execute("SELECT COUNT(*) AS n FROM files")
        assert (await cursor.fetchone())["n"] == 0
        cursor = await db.execute("SELECT category_id FROM user_settings WHERE chat_id = ?", (ctx.settings.web_chat_id,))
        row = await cursor.fetchone()
        assert row is None or row["category_id"] != 999
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_webhook_acknowledges_update_whose_handler_fails(ctx, monkeypatch, caplog):
    calls = []

    async def broken_handle(*args, **kwargs):
        calls.append(args)
        raise RuntimeError("handler exploded")

    monkeypatch.setattr(ctx.engine, "handle", broken_handle)
    bot = create_bot(ctx.settings)
    dp = create_dispatcher(ctx)
    update = {
        "update_id": 7,
        "message": {
            "message_id": 1,
            "date": 1700000000,
            "chat": {"id": 42, "type": "private"},
            "from": {"id": 42, "is_bot": False, "first_name": "Ann"},
            "text": "hello",
        },
    }
    logged = "Unhandled error while processing update 7"

    with caplog.at_level(logging.ERROR, logger="imgbed.handlers.errors"):
        async with TestClient(TestServer(create_app(ctx, bot=bot, dispatcher=dp))) as client:
            resp = await client.post(ctx.settings.webhook_path, json=update)
            for _ in range(200):
                if logged in caplog.text:
                    break
                await asyncio.sleep(0.01)

    assert resp.status == 200
    assert len(calls) == 1
    assert logged in caplog.text


@pytest.mark.asyncio
async def test_app_state_uses_typed_keys(ctx):
    with warnings.catch_warnings():
        warnings.simplefilter("error", web.NotAppKeyWarning)
        app = create_app(ctx)
        async with TestClient(TestServer(app)) as client:
            resp = await client.get("/config")

    assert resp.status == 200
    assert app[CTX_KEY] is ctx
    assert app[BOOT_KEY].error is None
