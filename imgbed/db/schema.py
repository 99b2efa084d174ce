"""Self-healing schema management for the metadata store.

Every cold start runs :meth:`SchemaManager.ensure_schema`. Nothing here takes a
lock: concurrent starts may race on the same ALTER, and the loser re-reads the
table layout and accepts the column if it is there by now.
"""

import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime

import aiosqlite

from imgbed.db.models import (
    DEFAULT_CATEGORY_NAME,
    DEFAULT_CATEGORY_NAMES,
    INDEXES,
    LEGACY_COLUMNS,
    LEGACY_STORAGE_TYPES,
    TABLES,
    StorageType,
    WaitingFor,
    create_table_sql,
)
from imgbed.errors import PersistenceRowError, SchemaError

logger = logging.getLogger(__name__)

_EMPTY = (None, "", 0)

# Column defaults, also used for NULL or unreadable storage values.
_STORAGE_DEFAULTS = {
    "files": StorageType.RELAY,
    "user_settings": StorageType.OBJECT,
}

_DEFAULT_NAME_SLOTS = ", ".join("?" for _ in DEFAULT_CATEGORY_NAMES)


@dataclass
class RebuildReport:
    table: str
    restored: int = 0
    skipped: int = 0


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_epoch_ms(value, now_ms: int) -> int:
    """Normalise the timestamp shapes earlier deployments wrote (ms, s, ISO text)."""
    if value in _EMPTY:
        return now_ms
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            value = int(text)
        else:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return now_ms
            return int(parsed.timestamp() * 1000)
    try:
        value = int(value)
    except (TypeError, ValueError, OverflowError):
        return now_ms
    # Values below 1e11 are seconds, not milliseconds.
    return value * 1000 if value < 100_000_000_000 else value


def _restored_values(table: str, row: dict, now_ms: int) -> dict:
    row = dict(row)
    for legacy_table, legacy, canonical in LEGACY_COLUMNS:
        if legacy_table == table and row.get(canonical) in _EMPTY and row.get(legacy) not in _EMPTY:
            row[canonical] = row[legacy]

    values = {}
    for column in TABLES[table]:
        name = column.name
        value = row.get(name)
        if name == "id" and value is None:
            continue
        if name == "created_at":
            value = _to_epoch_ms(value, now_ms)
        elif name == "relay_message_id":
            value = value if isinstance(value, int) and value > 0 else 0
        elif name == "storage_type":
            default = _STORAGE_DEFAULTS[table]
            try:
                value = StorageType.parse(value).value if value else default.value
            except ValueError:
                value = default.value
        elif name == "blob_ref" and value in _EMPTY:
            value = row.get("url")
        elif name == "waiting_for":
            value = WaitingFor.from_db(value).db_value
        elif name == "name" and value in _EMPTY:
            value = f"Unnamed category {row.get('id') or now_ms}"
        values[name] = value
    return values


class SchemaManager:
    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._needs_rebuild: set[str] = set()

    async def columns(self, table: str) -> set[str]:
        cursor = await self._db.execute(f'PRAGMA table_info("{table}")')
        rows = await cursor.fetchall()
        return {row["name"] for row in rows}

    async def ensure_schema(self) -> None:
        """Create, reconcile and validate all tables. Raises SchemaError on fatal failure."""
        # Rebuilds drop parent tables; enforcement would turn that into a cascade.
        await self._db.execute("PRAGMA foreign_keys=OFF")
        try:
            for table in TABLES:
                logger.info("Ensuring table %s", table)
                await self._db.execute(create_table_sql(table))
            await self._db.commit()

            await self.reconcile_legacy_columns()

            for table, columns in TABLES.items():
                for column in columns:
                    if column.add_decl is None:
                        continue
                    if not await self.ensure_column(table, column.name, column.add_decl):
                        logger.warning("Column %s.%s is still missing, leaving it to validation", table, column.name)

            await self.validate_structure()
            await self._normalise_legacy_values()

            for statement in INDEXES:
                await self._db.execute(statement)
            await self._db.execute(
                f"""
                INSERT INTO categories (name, created_at)
                SELECT ?, ?
                WHERE NOT EXISTS (SELECT 1 FROM categories WHERE name IN ({_DEFAULT_NAME_SLOTS}))
                ON CONFLICT(name) DO NOTHING
                """,
                (DEFAULT_CATEGORY_NAME, _now_ms(), *DEFAULT_CATEGORY_NAMES),
            )
            await self._db.commit()
        except sqlite3.Error as exc:
            raise SchemaError(f"schema initialisation failed: {exc}") from exc
        finally:
            await self._db.execute("PRAGMA foreign_keys=ON")
        logger.info("Database schema is ready")

    async def ensure_column(self, table: str, column: str, column_type: str) -> bool:
        if column in await self.columns(table):
            return True
        logger.info("Adding column %s.%s", table, column)
        try:
            await self._db.execute(f'ALTER TABLE "{table}" ADD COLUMN "{column}" {column_type}')
            await self._db.commit()
            return True
        except sqlite3.Error as exc:
            # Another instance may have won the race; trust the table layout, not the error.
            if column in await self.columns(table):
                logger.info("Column %s.%s appeared after failed ALTER (%s)", table, column, exc)
                return True
            logger.error("Failed to add column %s.%s: %s", table, column, exc)
            return False

    async def reconcile_legacy_columns(self) -> None:
        """Fold legacy column names into their canonical columns."""
        for table, legacy, canonical in LEGACY_COLUMNS:
            present = await self.columns(table)
            if legacy not in present:
                continue

            if canonical in present:
                logger.info("Merging %s.%s into %s", table, legacy, canonical)
                await self._db.execute(
                    f"""
                    UPDATE "{table}" SET "{canonical}" = "{legacy}"
                    WHERE ("{canonical}" IS NULL OR "{canonical}" = '' OR "{canonical}" = 0)
                      AND "{legacy}" IS NOT NULL
                    """
                )
                await self._db.commit()
                statement = f'ALTER TABLE "{table}" DROP COLUMN "{legacy}"'
            else:
                logger.info("Renaming %s.%s to %s", table, legacy, canonical)
                statement = f'ALTER TABLE "{table}" RENAME COLUMN "{legacy}" TO "{canonical}"'

            try:
                await self._db.execute(statement)
                await self._db.commit()
            except sqlite3.Error as exc:
                present = await self.columns(table)
                if legacy in present:
                    logger.warning("Could not retire %s.%s (%s), scheduling rebuild", table, legacy, exc)
                    self._needs_rebuild.add(table)

    async def validate_structure(self) -> list[str]:
        """Rebuild every table that is short a required column. Returns rebuilt tables."""
        rebuilt = []
        for table, columns in TABLES.items():
            required = {c.name for c in columns}
            missing = required - await self.columns(table)
            if not missing and table not in self._needs_rebuild:
                continue

            logger.warning("Table %s is incomplete (missing %s), rebuilding", table, sorted(missing))
            await self.rebuild_table(table)
            rebuilt.append(table)
            self._needs_rebuild.discard(table)

            missing = required - await self.columns(table)
            if missing:
                raise SchemaError(f"table {table} still lacks {sorted(missing)} after rebuild")
        return rebuilt

    async def rebuild_table(self, table: str) -> RebuildReport:
        """Recreate ``table`` from the canonical schema, restoring rows one by one."""
        report = RebuildReport(table=table)
        try:
            cursor = await self._db.execute(f'SELECT * FROM "{table}"')
            rows = [dict(r) for r in await cursor.fetchall()]
            await self._db.execute(f'DROP TABLE IF EXISTS "{table}"')
            await self._db.execute(create_table_sql(table))
            await self._db.commit()
        except sqlite3.Error as exc:
            raise SchemaError(f"failed to rebuild {table}: {exc}") from exc

        now_ms = _now_ms()
        for row in rows:
            try:
                values = _restored_values(table, row, now_ms)
                names = ", ".join(values)
                placeholders = ", ".join("?" for _ in values)
                await self._db.execute(
                    f'INSERT INTO "{table}" ({names}) VALUES ({placeholders})',
                    tuple(values.values()),
                )
                report.restored += 1
            except Exception as exc:
                # The table is already recreated; a bad row is skipped, never fatal.
                error = PersistenceRowError(table, row, exc)
                logger.error("%s; row=%r", error, row)
                report.skipped += 1
        await self._db.commit()

        logger.info("Rebuilt %s: %d rows restored, %d skipped", table, report.restored, report.skipped)
        return report

    async def _normalise_legacy_values(self) -> None:
        known = {**LEGACY_STORAGE_TYPES, **{t.value: t.value for t in StorageType}}
        for table, default in _STORAGE_DEFAULTS.items():
            for raw, canonical in known.items():
                await self._db.execute(
                    f'UPDATE "{table}" SET storage_type = ? '
                    "WHERE lower(trim(storage_type)) = ? AND storage_type != ?",
                    (canonical, raw, canonical),
                )
            # Earlier deployments stored the form field unchecked, NULL included.
            await self._db.execute(
                f'UPDATE "{table}" SET storage_type = ? '
                "WHERE storage_type IS NULL OR storage_type NOT IN (?, ?)",
                (default.value, StorageType.OBJECT.value, StorageType.RELAY.value),
            )
        for legacy, canonical in (("new_category", WaitingFor.CATEGORY_NAME), ("custom_suffix", WaitingFor.SUFFIX)):
            await self._db.execute(
                "UPDATE user_settings SET waiting_for = ? WHERE waiting_for = ?",
                (canonical.value, legacy),
            )
        await self._db.commit()
