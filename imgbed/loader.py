from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

from imgbed.config import Settings
from imgbed.context import AppContext
from imgbed.handlers import register_all_handlers
from imgbed.middlewares.user_setting import UserSettingMiddleware
from imgbed.storage.object_store import S3ObjectStore
from imgbed.storage.relay import TelegramRelay


def create_bot(settings: Settings) -> Bot:
    return Bot(
        token=settings.telegram_bot_token,
        default=DefaultBotProperties(parse_mode=None),
    )


def create_context(settings: Settings, bot: Bot) -> AppContext:
    return AppContext.build(
        settings,
        relay=TelegramRelay(bot),
        object_store=S3ObjectStore.from_settings(settings),
    )


def create_dispatcher(ctx: AppContext) -> Dispatcher:
    dp = Dispatcher(storage=MemoryStorage(), ctx=ctx)

    # Every chat gets a settings row before its update is handled
    dp.message.middleware(UserSettingMiddleware())
    dp.callback_query.middleware(UserSettingMiddleware())

    register_all_handlers(dp)

    return dp
