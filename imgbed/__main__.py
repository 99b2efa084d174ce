import asyncio
import logging

from aiogram.types import BotCommand
from aiohttp import web

from imgbed.config import get_settings
from imgbed.errors import ConfigurationError
from imgbed.loader import create_bot, create_context, create_dispatcher
from imgbed.services.webhook import register_webhook
from imgbed.web.app import create_app


async def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)

    try:
        settings = get_settings()
    except ConfigurationError as exc:
        logger.critical("Configuration error: %s", exc)
        raise SystemExit(1) from exc

    bot = create_bot(settings)
    ctx = create_context(settings, bot)
    dp = create_dispatcher(ctx)
    app = create_app(ctx, bot=bot, dispatcher=dp)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port)
    await site.start()
    logger.info("Listening on %s:%s", settings.host, settings.port)

    try:
        await bot.set_my_commands([
            BotCommand(command="start", description="Show the settings panel"),
            BotCommand(command="panel", description="Show the settings panel"),
        ])
    except Exception:
        logger.warning("Failed to set bot commands menu, continuing anyway.", exc_info=True)

    if settings.set_webhook and not await register_webhook(bot, settings.webhook_url):
        logger.error("Webhook setup failed")

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


if __name__ == "__main__":
    asyncio.run(main())
