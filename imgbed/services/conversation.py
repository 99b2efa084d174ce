"""Per-chat configuration dialogue driven by panel buttons and follow-up text.

The state lives in ``user_settings.waiting_for``; every (state, trigger) pair
has an entry in ``TRANSITIONS``.
"""

import html
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import aiosqlite

from imgbed.config import Settings
from imgbed.db.models import Category, StorageType, UserSetting, WaitingFor
from imgbed.db.repositories import category as category_repo
from imgbed.db.repositories.files import chat_stats
from imgbed.db.repositories.user_settings import update_setting
from imgbed.errors import ValidationError
from imgbed.storage.naming import normalize_suffix
from imgbed.utils.formatting import STORAGE_LABELS, render_panel, render_stats

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    CREATE_CATEGORY = "create_category"
    SET_SUFFIX = "set_suffix"
    SWITCH_STORAGE = "switch_storage"
    LIST_CATEGORIES = "list_categories"
    SELECT_CATEGORY = "select_category"
    STATS = "stats"
    BACK = "back"
    CLOSE = "close"
    TEXT = "text"


@dataclass
class Reply:
    text: str
    force_reply: bool = False
    categories: list[Category] | None = None


@dataclass
class Outcome:
    setting: UserSetting
    replies: list[Reply] = field(default_factory=list)
    show_panel: bool = False
    edit_text: str | None = None


_ANY_STATE = {
    Trigger.CREATE_CATEGORY: "_prompt_category",
    Trigger.SET_SUFFIX: "_prompt_suffix",
    Trigger.SWITCH_STORAGE: "_switch_storage",
    Trigger.LIST_CATEGORIES: "_list_categories",
    Trigger.SELECT_CATEGORY: "_select_category",
    Trigger.STATS: "_stats",
    Trigger.BACK: "_back",
    Trigger.CLOSE: "_close",
}

TRANSITIONS: dict[tuple[WaitingFor, Trigger], str] = {
    (state, trigger): action for state in WaitingFor for trigger, action in _ANY_STATE.items()
}
TRANSITIONS.update({
    (WaitingFor.NONE, Trigger.TEXT): "_idle_text",
    (WaitingFor.CATEGORY_NAME, Trigger.TEXT): "_create_category",
    (WaitingFor.SUFFIX, Trigger.TEXT): "_set_suffix",
})


class ConversationEngine:
    def __init__(self, settings: Settings, object_available: bool = True) -> None:
        self._settings = settings
        self._object_available = object_available

    async def handle(
        self,
        db: aiosqlite.Connection,
        setting: UserSetting,
        trigger: Trigger,
        payload: Any = None,
    ) -> Outcome:
        action = TRANSITIONS[(setting.waiting_for, trigger)]
        logger.debug("chat=%s state=%s trigger=%s -> %s", setting.chat_id, setting.waiting_for.value, trigger.value, action)
        return await getattr(self, action)(db, setting, payload)

    async def panel_text(self, db: aiosqlite.Connection, setting: UserSetting) -> str:
        category = await category_repo.get_category(db, setting.category_id) if setting.category_id else None
        return render_panel(
            setting.storage_type,
            category.name if category else None,
            setting.custom_suffix,
            self._settings.max_size_mb,
        )

    async def _prompt_category(self, db, setting: UserSetting, payload) -> Outcome:
        setting = await update_setting(db, setting.chat_id, waiting_for=WaitingFor.CATEGORY_NAME)
        return Outcome(setting, [Reply("\U0001f4dd Reply with the name of the new category.", force_reply=True)])

    async def _create_category(self, db, setting: UserSetting, payload) -> Outcome:
        name = (payload or "").strip()
        replies = []
        try:
            category = await category_repo.create_category(db, name)
        except ValidationError as exc:
            category = None
            replies.append(Reply(f"⚠️ {exc.message}"))
        else:
            if category is None:
                replies.append(Reply(f"⚠️ Category \"{html.escape(name)}\" already exists."))

        if category is not None:
            setting = await update_setting(
                db, setting.chat_id, category_id=category.id, waiting_for=WaitingFor.NONE
            )
            replies.append(Reply(f"✅ Category \"{html.escape(category.name)}\" created and selected."))
        else:
            setting = await update_setting(db, setting.chat_id, waiting_for=WaitingFor.NONE)
        return Outcome(setting, replies, show_panel=True)

    async def _prompt_suffix(self, db, setting: UserSetting, payload) -> Outcome:
        setting = await update_setting(db, setting.chat_id, waiting_for=WaitingFor.SUFFIX)
        return Outcome(setting, [Reply(
            "\U0001f3f7 Reply with the file name to use for uploads, e.g. <code>my_file</code> "
            "gives <code>my_file.jpg</code>.\nSend <code>none</code> to go back to timestamps.",
            force_reply=True,
        )])

    async def _set_suffix(self, db, setting: UserSetting, payload) -> Outcome:
        try:
            suffix = normalize_suffix(payload)
        except ValidationError as exc:
            setting = await update_setting(db, setting.chat_id, waiting_for=WaitingFor.NONE)
            return Outcome(setting, [Reply(f"⚠️ {exc.message}")], show_panel=True)

        setting = await update_setting(
            db, setting.chat_id, custom_suffix=suffix, waiting_for=WaitingFor.NONE
        )
        if suffix is None:
            text = "✅ Custom file name cleared, uploads are named by timestamp again."
        else:
            text = (
                f"✅ Uploads will now be named <code>{html.escape(suffix)}.ext</code>.\n"
                "A new upload with the same name replaces the previous one."
            )
        return Outcome(setting, [Reply(text)], show_panel=True)

    async def _switch_storage(self, db, setting: UserSetting, payload) -> Outcome:
        target = StorageType.RELAY if setting.storage_type is StorageType.OBJECT else StorageType.OBJECT
        if target is StorageType.OBJECT and not self._object_available:
            return Outcome(setting, [Reply("⚠️ Object storage is not configured on this server.")])
        setting = await update_setting(db, setting.chat_id, storage_type=target)
        return Outcome(setting, [Reply(f"✅ Switched to {STORAGE_LABELS[target]}.")], show_panel=True)

    async def _list_categories(self, db, setting: UserSetting, payload) -> Outcome:
        categories = await category_repo.list_categories(db)
        if not categories:
            return Outcome(setting, [Reply("⚠️ No categories yet, create one first.")])
        return Outcome(setting, [Reply("\U0001f4c2 Choose a category:", categories=categories)])

    async def _select_category(self, db, setting: UserSetting, payload) -> Outcome:
        category = await category_repo.get_category(db, int(payload)) if payload is not None else None
        if category is None:
            return Outcome(setting, [Reply("⚠️ That category no longer exists.")])
        setting = await update_setting(db, setting.chat_id, category_id=category.id)
        return Outcome(
            setting,
            [Reply(f"✅ Current category: {html.escape(category.name)}")],
            show_panel=True,
        )

    async def _stats(self, db, setting: UserSetting, payload) -> Outcome:
        stats = await chat_stats(db, setting.chat_id)
        return Outcome(setting, [Reply(render_stats(stats))])

    async def _back(self, db, setting: UserSetting, payload) -> Outcome:
        return Outcome(setting, show_panel=True)

    async def _close(self, db, setting: UserSetting, payload) -> Outcome:
        return Outcome(setting, edit_text="Panel closed. Send /start to open it again.")

    async def _idle_text(self, db, setting: UserSetting, payload) -> Outcome:
        return Outcome(setting, [Reply("Send a picture or a file to upload it, or /start for settings.")])
