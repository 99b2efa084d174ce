from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, NamedTuple


class StorageType(str, Enum):
    OBJECT = "object"
    RELAY = "relay"

    @classmethod
    def parse(cls, value: str) -> "StorageType":
        """Accept canonical names and the values written by earlier deployments."""
        value = str(value or "").strip().lower()
        value = LEGACY_STORAGE_TYPES.get(value, value)
        return cls(value)


LEGACY_STORAGE_TYPES = {
    "r2": StorageType.OBJECT.value,
    "telegram": StorageType.RELAY.value,
}


class WaitingFor(str, Enum):
    NONE = "none"
    CATEGORY_NAME = "category_name"
    SUFFIX = "suffix"

    @property
    def db_value(self) -> str | None:
        return None if self is WaitingFor.NONE else self.value

    @classmethod
    def from_db(cls, value: str | None) -> "WaitingFor":
        if not value:
            return cls.NONE
        value = _LEGACY_WAITING_FOR.get(value, value)
        try:
            return cls(value)
        except ValueError:
            return cls.NONE


_LEGACY_WAITING_FOR = {
    "new_category": WaitingFor.CATEGORY_NAME.value,
    "custom_suffix": WaitingFor.SUFFIX.value,
}


class Column(NamedTuple):
    name: str
    decl: str
    # Declaration usable with ALTER TABLE ADD COLUMN; None when SQLite cannot
    # add the column in place (primary or unique keys) and only a rebuild helps.
    add_decl: str | None


TABLES: dict[str, tuple[Column, ...]] = {
    "categories": (
        Column("id", "INTEGER PRIMARY KEY AUTOINCREMENT", None),
        Column("name", "TEXT NOT NULL UNIQUE", None),
        Column("created_at", "INTEGER NOT NULL", "INTEGER NOT NULL DEFAULT 0"),
    ),
    "user_settings": (
        Column("id", "INTEGER PRIMARY KEY AUTOINCREMENT", None),
        Column("chat_id", "TEXT NOT NULL UNIQUE", None),
        Column("storage_type", "TEXT NOT NULL DEFAULT 'object'", "TEXT NOT NULL DEFAULT 'object'"),
        Column(
            "category_id",
            "INTEGER REFERENCES categories(id) ON DELETE SET NULL",
            "INTEGER REFERENCES categories(id) ON DELETE SET NULL",
        ),
        Column("custom_suffix", "TEXT", "TEXT"),
        Column("waiting_for", "TEXT", "TEXT"),
        Column("created_at", "INTEGER NOT NULL", "INTEGER NOT NULL DEFAULT 0"),
    ),
    "files": (
        Column("id", "INTEGER PRIMARY KEY AUTOINCREMENT", None),
        Column("url", "TEXT NOT NULL", "TEXT"),
        Column("blob_ref", "TEXT NOT NULL", "TEXT"),
        Column("relay_message_id", "INTEGER NOT NULL DEFAULT 0", "INTEGER NOT NULL DEFAULT 0"),
        Column("created_at", "INTEGER NOT NULL", "INTEGER NOT NULL DEFAULT 0"),
        Column("file_name", "TEXT", "TEXT"),
        Column("file_size", "INTEGER", "INTEGER"),
        Column("mime_type", "TEXT", "TEXT"),
        Column("uploader_chat_id", "TEXT", "TEXT"),
        Column("storage_type", "TEXT NOT NULL DEFAULT 'relay'", "TEXT NOT NULL DEFAULT 'relay'"),
        Column(
            "category_id",
            "INTEGER REFERENCES categories(id) ON DELETE SET NULL",
            "INTEGER REFERENCES categories(id) ON DELETE SET NULL",
        ),
        Column("custom_suffix", "TEXT", "TEXT"),
    ),
}

# (table, legacy column, canonical column)
LEGACY_COLUMNS: tuple[tuple[str, str, str], ...] = (
    ("user_settings", "current_category_id", "category_id"),
    ("files", "fileId", "blob_ref"),
    ("files", "message_id", "relay_message_id"),
    ("files", "chat_id", "uploader_chat_id"),
)

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_files_url ON files(url)",
    "CREATE INDEX IF NOT EXISTS idx_files_blob_ref ON files(blob_ref)",
    "CREATE INDEX IF NOT EXISTS idx_files_file_name ON files(file_name)",
    "CREATE INDEX IF NOT EXISTS idx_files_category ON files(category_id)",
]

DEFAULT_CATEGORY_NAME = "Default"
# Earlier deployments created "默认分类"; either name counts as the default category.
DEFAULT_CATEGORY_NAMES = (DEFAULT_CATEGORY_NAME, "默认分类")


def create_table_sql(table: str, if_not_exists: bool = True) -> str:
    columns = ",\n    ".join(f"{c.name} {c.decl}" for c in TABLES[table])
    guard = "IF NOT EXISTS " if if_not_exists else ""
    return f"CREATE TABLE {guard}{table} (\n    {columns}\n)"


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    created_at: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Category":
        return cls(id=row["id"], name=row["name"], created_at=row["created_at"])


@dataclass(frozen=True)
class UserSetting:
    chat_id: str
    storage_type: StorageType
    category_id: int | None = None
    custom_suffix: str | None = None
    waiting_for: WaitingFor = WaitingFor.NONE
    id: int | None = None
    created_at: int | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UserSetting":
        return cls(
            id=row["id"],
            chat_id=row["chat_id"],
            storage_type=StorageType.parse(row["storage_type"]),
            category_id=row["category_id"],
            custom_suffix=row["custom_suffix"],
            waiting_for=WaitingFor.from_db(row["waiting_for"]),
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class FileRecord:
    id: int
    url: str
    blob_ref: str
    storage_type: StorageType
    relay_message_id: int
    created_at: int
    file_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    uploader_chat_id: str | None = None
    category_id: int | None = None
    custom_suffix: str | None = None
    category_name: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "FileRecord":
        keys = row.keys()
        return cls(
            id=row["id"],
            url=row["url"],
            blob_ref=row["blob_ref"],
            storage_type=StorageType.parse(row["storage_type"]),
            relay_message_id=row["relay_message_id"] or 0,
            created_at=row["created_at"],
            file_name=row["file_name"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
            uploader_chat_id=row["uploader_chat_id"],
            category_id=row["category_id"],
            custom_suffix=row["custom_suffix"],
            category_name=row["category_name"] if "category_name" in keys else None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "storage_type": self.storage_type.value,
            "created_at": self.created_at,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "custom_suffix": self.custom_suffix,
        }
