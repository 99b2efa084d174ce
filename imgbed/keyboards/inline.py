from __future__ import annotations

from aiogram.types import ForceReply, InlineKeyboardButton, InlineKeyboardMarkup

from imgbed.db.models import Category


def panel_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="\U0001f504 Switch storage", callback_data="panel:switch_storage"),
                InlineKeyboardButton(text="\U0001f4ca Stats", callback_data="panel:stats"),
            ],
            [
                InlineKeyboardButton(text="\U0001f4c2 Select category", callback_data="panel:list_categories"),
                InlineKeyboardButton(text="➕ New category", callback_data="panel:create_category"),
            ],
            [
                InlineKeyboardButton(text="\U0001f3f7 Set file name", callback_data="panel:set_suffix"),
                InlineKeyboardButton(text="✖️ Close", callback_data="panel:close"),
            ],
        ]
    )


def category_keyboard(
    categories: list[Category], current_id: int | None = None
) -> InlineKeyboardMarkup:
    rows = []
    for category in categories:
        check = "✓ " if category.id == current_id else ""
        label = f"{check}{category.name}"
        if len(label) > 60:
            label = label[:57] + "..."
        rows.append([InlineKeyboardButton(text=label, callback_data=f"category:{category.id}")])
    rows.append([InlineKeyboardButton(text="« Back", callback_data="panel:back")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def reply_required() -> ForceReply:
    return ForceReply(force_reply=True)
