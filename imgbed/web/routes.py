"""JSON endpoints and the catch-all file route."""

import json
import logging

from aiohttp import web

from imgbed.db.engine import get_db
from imgbed.db.models import StorageType
from imgbed.db.repositories import category as category_repo
from imgbed.db.repositories import files as files_repo
from imgbed.db.repositories.user_settings import get_or_create_setting, update_setting
from imgbed.errors import NotFoundError, ValidationError
from imgbed.services.files import delete_file, rename_with_suffix, upload_file
from imgbed.storage.naming import resolve_mime
from imgbed.storage.resolver import ResolutionKind
from imgbed.web.middlewares import CTX_KEY

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()


async def _read_json(request: web.Request) -> dict:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise ValidationError("Request body must be JSON") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _optional_int(value, field: str) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer") from None


@routes.get("/config")
async def get_config(request: web.Request) -> web.Response:
    return web.json_response({"maxSizeMB": request.app[CTX_KEY].settings.max_size_mb})


@routes.post("/upload")
async def upload(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    form = await request.post()
    file = form.get("file")
    if not isinstance(file, web.FileField):
        raise ValidationError("No file found in the form")

    category_id = _optional_int(form.get("category"), "category")
    raw_storage = form.get("storage_type")
    try:
        storage_type = StorageType.parse(raw_storage) if raw_storage else None
    except ValueError:
        raise ValidationError(f"Unknown storage_type {raw_storage!r}") from None

    data = file.file.read()
    mime_type = resolve_mime(file.filename, file.content_type)
    chat_id = ctx.settings.web_chat_id

    db = await get_db(ctx.settings.db_path)
    try:
        setting = await get_or_create_setting(db, chat_id, ctx.settings.default_storage)
        if category_id is None:
            category_id = await category_repo.get_default_category_id(db)
        elif await category_repo.get_category(db, category_id) is None:
            raise ValidationError(f"Category {category_id} does not exist")
        # The form's choices become the web uploader's remembered preferences.
        await update_setting(
            db,
            chat_id,
            storage_type=storage_type or setting.storage_type,
            category_id=category_id,
        )
        record = await upload_file(
            db,
            ctx,
            data=data,
            file_name=file.filename,
            mime_type=mime_type,
            chat_id=chat_id,
            category_id=category_id,
        )
    finally:
        await db.close()

    return web.json_response({"status": 1, "url": record.url})


@routes.post("/update-suffix")
async def update_suffix(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    body = await _read_json(request)
    db = await get_db(ctx.settings.db_path)
    try:
        old, new = await rename_with_suffix(db, ctx, body.get("url") or body.get("fileId"), body.get("suffix"))
    finally:
        await db.close()
    return web.json_response({
        "status": 1,
        "message": "Renamed",
        "data": {"oldUrl": old.url, "newUrl": new.url},
    })


@routes.post("/delete")
async def delete(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    body = await _read_json(request)
    file_id = _optional_int(body.get("id"), "id")
    if file_id is None:
        raise ValidationError("id is required")

    db = await get_db(ctx.settings.db_path)
    try:
        record = await files_repo.get_file(db, file_id)
        if record is None:
            raise NotFoundError("File not found")
        await delete_file(db, ctx, record)
    finally:
        await db.close()
    return web.json_response({"status": 1, "message": "Deleted"})


@routes.post("/delete-multiple")
async def delete_multiple(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    body = await _read_json(request)
    urls = body.get("urls")
    if not isinstance(urls, list) or not urls:
        raise ValidationError("urls must be a non-empty list")

    deleted, missing = [], []
    db = await get_db(ctx.settings.db_path)
    try:
        for url in urls:
            record = await files_repo.find_by_url(db, str(url))
            if record is None:
                missing.append(url)
                continue
            await delete_file(db, ctx, record)
            deleted.append(url)
    finally:
        await db.close()
    return web.json_response({"status": 1, "deleted": deleted, "missing": missing})


@routes.get("/categories")
async def categories(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    db = await get_db(ctx.settings.db_path)
    try:
        items = await category_repo.list_categories(db)
    finally:
        await db.close()
    return web.json_response({
        "status": 1,
        "categories": [{"id": c.id, "name": c.name, "created_at": c.created_at} for c in items],
    })


@routes.post("/create-category")
async def create_category(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    body = await _read_json(request)
    name = body.get("name")
    if not isinstance(name, str):
        raise ValidationError("Category name must not be empty")

    db = await get_db(ctx.settings.db_path)
    try:
        category = await category_repo.create_category(db, name)
    finally:
        await db.close()
    if category is None:
        raise ValidationError(f"Category \"{name.strip()}\" already exists")
    return web.json_response({
        "status": 1,
        "message": "Category created",
        "category": {"id": category.id, "name": category.name},
    })


@routes.post("/delete-category")
async def delete_category(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    body = await _read_json(request)
    category_id = _optional_int(body.get("id"), "id")
    if category_id is None:
        raise ValidationError("id is required")

    db = await get_db(ctx.settings.db_path)
    try:
        category = await category_repo.delete_category(db, category_id)
    finally:
        await db.close()
    return web.json_response({"status": 1, "message": f"Category \"{category.name}\" deleted"})


@routes.get("/files")
async def list_files(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    category_id = _optional_int(request.query.get("category"), "category")
    db = await get_db(ctx.settings.db_path)
    try:
        records = await files_repo.list_files(db, category_id)
    finally:
        await db.close()
    return web.json_response({"status": 1, "files": [r.to_dict() for r in records]})


@routes.post("/search")
async def search(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    body = await _read_json(request)
    query = str(body.get("query") or "")
    db = await get_db(ctx.settings.db_path)
    try:
        records = await files_repo.search_files(db, query)
    finally:
        await db.close()
    return web.json_response({"files": [r.to_dict() for r in records]})


async def serve_file(request: web.Request) -> web.StreamResponse:
    ctx = request.app[CTX_KEY]
    db = await get_db(ctx.settings.db_path)
    try:
        resolution = await ctx.resolver.resolve(db, request.match_info.get("path", ""))
    finally:
        await db.close()

    if resolution.kind is ResolutionKind.REDIRECT:
        raise web.HTTPFound(resolution.location)
    if resolution.kind is ResolutionKind.NOT_FOUND:
        raise NotFoundError("File not found")

    if isinstance(resolution.body, bytes):
        return web.Response(
            body=resolution.body,
            content_type=resolution.content_type,
            headers=resolution.headers,
        )

    response = web.StreamResponse(headers=resolution.headers)
    response.content_type = resolution.content_type
    await response.prepare(request)
    async for chunk in resolution.body:
        await response.write(chunk)
    await response.write_eof()
    return response
