import aiosqlite
from aiogram import Bot, Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from imgbed.db.models import UserSetting
from imgbed.keyboards.inline import category_keyboard, panel_keyboard, reply_required
from imgbed.services.conversation import Outcome

router = Router()


async def send_panel(bot: Bot, chat_id: int | str, db: aiosqlite.Connection, setting: UserSetting, ctx) -> None:
    text = await ctx.engine.panel_text(db, setting)
    await bot.send_message(chat_id, text, reply_markup=panel_keyboard(), parse_mode="HTML")


async def deliver(bot: Bot, chat_id: int | str, db: aiosqlite.Connection, outcome: Outcome, ctx) -> None:
    """Send the replies of an outcome, then the refreshed panel if the state changed."""
    for reply in outcome.replies:
        if reply.categories is not None:
            markup = category_keyboard(reply.categories, outcome.setting.category_id)
        elif reply.force_reply:
            markup = reply_required()
        else:
            markup = None
        await bot.send_message(chat_id, reply.text, reply_markup=markup, parse_mode="HTML")
    if outcome.show_panel:
        await send_panel(bot, chat_id, db, outcome.setting, ctx)


@router.message(CommandStart())
async def cmd_start(message: Message, bot: Bot, db: aiosqlite.Connection, user_setting: UserSetting, ctx) -> None:
    await send_panel(bot, message.chat.id, db, user_setting, ctx)


@router.message(Command("panel"))
async def cmd_panel(message: Message, bot: Bot, db: aiosqlite.Connection, user_setting: UserSetting, ctx) -> None:
    await send_panel(bot, message.chat.id, db, user_setting, ctx)
