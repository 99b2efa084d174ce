import logging

from aiogram import Bot, Dispatcher
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from aiohttp import web

from imgbed.context import AppContext
from imgbed.db.engine import init_db
from imgbed.errors import ImgbedError
from imgbed.web.middlewares import BOOT_KEY, CTX_KEY, BootState, boot_guard, error_middleware
from imgbed.web.routes import routes, serve_file

logger = logging.getLogger(__name__)

_FORM_OVERHEAD = 1024 * 1024


async def _init_schema(app: web.Application) -> None:
    ctx: AppContext = app[CTX_KEY]
    try:
        await init_db(ctx.settings.db_path)
    except ImgbedError as exc:
        logger.critical("Initialisation failed, refusing to serve: %s", exc)
        app[BOOT_KEY].error = exc


async def _close_context(app: web.Application) -> None:
    await app[CTX_KEY].close()


def create_app(
    ctx: AppContext,
    bot: Bot | None = None,
    dispatcher: Dispatcher | None = None,
) -> web.Application:
    app = web.Application(
        middlewares=[boot_guard, error_middleware],
        client_max_size=ctx.settings.max_size_bytes + _FORM_OVERHEAD,
    )
    app[CTX_KEY] = ctx
    app[BOOT_KEY] = BootState()
    app.on_startup.append(_init_schema)
    app.on_cleanup.append(_close_context)

    if bot is not None and dispatcher is not None:
        # Updates are acknowledged at once and processed in the background.
        SimpleRequestHandler(
            dispatcher=dispatcher,
            bot=bot,
            handle_in_background=True,
        ).register(app, path=ctx.settings.webhook_path)
        setup_application(app, dispatcher, bot=bot)

    app.add_routes(routes)
    # Registered last so every named route wins over it.
    app.router.add_get("/{path:.+}", serve_file)
    return app
