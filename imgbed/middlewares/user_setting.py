from typing import Any, Awaitable, Callable

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject

from imgbed.db.engine import get_db
from imgbed.db.repositories.user_settings import get_or_create_setting


def _chat_id(event: TelegramObject) -> int | None:
    if isinstance(event, Message):
        return event.chat.id
    if isinstance(event, CallbackQuery):
        if event.message is not None:
            return event.message.chat.id
        return event.from_user.id
    return None


class UserSettingMiddleware(BaseMiddleware):
    """Opens a connection and makes sure the chat has a settings row before any handler runs."""

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        chat_id = _chat_id(event)
        if chat_id is None:
            return await handler(event, data)

        ctx = data["ctx"]
        db = await get_db(ctx.settings.db_path)
        try:
            data["db"] = db
            data["user_setting"] = await get_or_create_setting(
                db, str(chat_id), ctx.settings.default_storage
            )
            return await handler(event, data)
        finally:
            await db.close()
