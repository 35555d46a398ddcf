"""Database utilities for tracking synchronization state."""

import json
import logging
from pathlib import Path
from typing import Any, Iterable

import aiosqlite

from taskbridge.core.models import ItemKind, Snapshot
from taskbridge.utils.dates import utc_now_iso

logger = logging.getLogger(__name__)

_SNAPSHOT_COLUMNS = (
    "list_id",
    "mirrored_id",
    "parent_native_id",
    "title",
    "notes",
    "status",
    "due_date",
    "remote_modified_at",
    "mirrored_modified_at",
    "content_hash",
    "applied_tags",
    "extra",
)


class SnapshotStore:
    """
    Manages the snapshot table for one item kind.

    Every source and item type shares a single ``snapshots`` table,
    partitioned by ``kind``. A store instance only ever reads and writes its
    own partition, so sources running concurrently never touch each other's
    rows.
    """

    def __init__(self, db_path: Path, kind: ItemKind | str):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file
            kind: Partition this store operates on
        """
        self.db_path = db_path
        self.kind = kind.value if isinstance(kind, ItemKind) else str(kind)

    async def initialize(self) -> None:
        """
        Initialize database schema if it doesn't exist.

        Creates the snapshots table and its lookup indexes.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS snapshots (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL,
                    native_id TEXT NOT NULL,
                    list_id TEXT NOT NULL DEFAULT '',
                    mirrored_id TEXT,
                    parent_native_id TEXT,
                    title TEXT NOT NULL DEFAULT '',
                    notes TEXT,
                    status TEXT NOT NULL DEFAULT '',
                    due_date TEXT,
                    remote_modified_at TEXT,
                    mirrored_modified_at TEXT,
                    content_hash TEXT,
                    applied_tags TEXT,
                    extra TEXT,
                    synced_at TEXT NOT NULL,
                    UNIQUE(kind, native_id)
                )
                """
            )

            await db.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_snapshots_mirrored
                ON snapshots(kind, mirrored_id)
                """
            )

            await db.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_snapshots_list
                ON snapshots(kind, list_id)
                """
            )

            await db.commit()
            logger.debug(f"Snapshot store ({self.kind}) initialized at {self.db_path}")

    async def get_by_native_id(self, native_id: str) -> Snapshot | None:
        """
        Get the snapshot for a native item.

        Args:
            native_id: ID assigned by the source platform

        Returns:
            Snapshot, or None if the item is not tracked
        """
        return await self._fetch_one("native_id = ?", (native_id,))

    async def get_by_mirrored_id(self, mirrored_id: str) -> Snapshot | None:
        """
        Get the snapshot linked to a Todoist task.

        Args:
            mirrored_id: Todoist task ID

        Returns:
            Snapshot, or None if no row references the task
        """
        return await self._fetch_one("mirrored_id = ?", (mirrored_id,))

    async def get_all(self, list_id: str | None = None) -> list[Snapshot]:
        """
        Get all snapshots in this partition.

        Args:
            list_id: Restrict to one native list

        Returns:
            List of snapshots
        """
        if list_id is None:
            return await self._fetch_all("1 = 1", ())
        return await self._fetch_all("list_id = ?", (list_id,))

    async def get_all_with_mirrored_id(self) -> list[Snapshot]:
        """Get all snapshots that are linked to a Todoist task."""
        return await self._fetch_all("mirrored_id IS NOT NULL", ())

    async def create(self, snapshot: Snapshot) -> None:
        """
        Insert a snapshot row.

        Args:
            snapshot: Record to persist; its kind is forced to this partition
        """
        values = self._column_values(snapshot)
        synced_at = utc_now_iso()
        columns = ", ".join(("kind", "native_id", *_SNAPSHOT_COLUMNS, "synced_at"))
        placeholders = ", ".join("?" for _ in range(len(_SNAPSHOT_COLUMNS) + 3))

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                f"INSERT OR REPLACE INTO snapshots ({columns}) VALUES ({placeholders})",
                (self.kind, snapshot.native_id, *values, synced_at),
            )
            await db.commit()

        snapshot.kind = self.kind
        snapshot.synced_at = synced_at
        logger.debug(f"Stored snapshot {self.kind}:{snapshot.native_id} -> {snapshot.mirrored_id}")

    async def update(self, native_id: str, **changes: Any) -> None:
        """
        Update fields of an existing snapshot.

        Args:
            native_id: ID assigned by the source platform
            **changes: Column values to overwrite

        Raises:
            ValueError: If an unknown column is passed
        """
        unknown = set(changes) - set(_SNAPSHOT_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown snapshot fields: {', '.join(sorted(unknown))}")

        if "extra" in changes:
            changes["extra"] = json.dumps(changes["extra"] or {})

        assignments = [f"{column} = ?" for column in changes]
        assignments.append("synced_at = ?")
        params = [*changes.values(), utc_now_iso(), self.kind, native_id]

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                f"UPDATE snapshots SET {', '.join(assignments)} WHERE kind = ? AND native_id = ?",
                params,
            )
            await db.commit()
            logger.debug(f"Updated snapshot {self.kind}:{native_id} ({', '.join(changes)})")

    async def delete(self, native_id: str) -> None:
        """
        Delete a snapshot.

        Args:
            native_id: ID assigned by the source platform
        """
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "DELETE FROM snapshots WHERE kind = ? AND native_id = ?",
                (self.kind, native_id),
            )
            await db.commit()
            logger.debug(f"Deleted snapshot {self.kind}:{native_id}")

    async def cleanup_stale(self, valid_mirrored_ids: Iterable[str]) -> int:
        """
        Remove rows whose Todoist task is no longer in the valid set.

        Args:
            valid_mirrored_ids: Todoist task IDs known to still exist

        Returns:
            Number of rows removed
        """
        valid = set(valid_mirrored_ids)
        stale = [row for row in await self.get_all_with_mirrored_id() if row.mirrored_id not in valid]
        if not stale:
            return 0

        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                "DELETE FROM snapshots WHERE kind = ? AND native_id = ?",
                [(self.kind, row.native_id) for row in stale],
            )
            await db.commit()

        logger.debug(f"Removed {len(stale)} stale {self.kind} snapshot(s)")
        return len(stale)

    async def clear(self) -> None:
        """Delete every row in this partition."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM snapshots WHERE kind = ?", (self.kind,))
            await db.commit()
            logger.info(f"Cleared all {self.kind} snapshots")

    async def get_stats(self) -> dict[str, int]:
        """
        Get partition statistics.

        Returns:
            Dictionary with ``total`` and ``linked`` counts
        """
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT COUNT(*), COUNT(mirrored_id) FROM snapshots WHERE kind = ?",
                (self.kind,),
            ) as cursor:
                row = await cursor.fetchone()
                total, linked = (row[0], row[1]) if row else (0, 0)
                return {"total": total, "linked": linked}

    async def _fetch_one(self, where: str, params: tuple) -> Snapshot | None:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT * FROM snapshots WHERE kind = ? AND {where}",
                (self.kind, *params),
            ) as cursor:
                row = await cursor.fetchone()
                return Snapshot.from_row(dict(row)) if row else None

    async def _fetch_all(self, where: str, params: tuple) -> list[Snapshot]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT * FROM snapshots WHERE kind = ? AND {where} ORDER BY id",
                (self.kind, *params),
            ) as cursor:
                rows = await cursor.fetchall()
                return [Snapshot.from_row(dict(row)) for row in rows]

    @staticmethod
    def _column_values(snapshot: Snapshot) -> tuple:
        values = []
        for column in _SNAPSHOT_COLUMNS:
            value = getattr(snapshot, column)
            if column == "extra":
                value = json.dumps(value or {})
            elif column in ("list_id", "title", "status") and value is None:
                value = ""
            values.append(value)
        return tuple(values)


class SyncStateDB:
    """
    Key/value bookkeeping per service.

    Stores ``last_sync_at`` and the ``completed_imported`` flag used by the
    "sync completed tasks once" option.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path

    async def initialize(self) -> None:
        """Initialize database schema if it doesn't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS sync_state (
                    service TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY(service, key)
                )
                """
            )
            await db.commit()

    async def get(self, service: str, key: str) -> str | None:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT value FROM sync_state WHERE service = ? AND key = ?",
                (service, key),
            ) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else None

    async def set(self, service: str, key: str, value: str | None) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO sync_state (service, key, value, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(service, key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (service, key, value, utc_now_iso()),
            )
            await db.commit()

    async def is_completed_imported(self, service: str) -> bool:
        return await self.get(service, "completed_imported") == "1"

    async def mark_completed_imported(self, service: str) -> None:
        await self.set(service, "completed_imported", "1")

    async def get_last_sync_at(self, service: str) -> str | None:
        return await self.get(service, "last_sync_at")

    async def set_last_sync_at(self, service: str, timestamp: str | None = None) -> None:
        await self.set(service, "last_sync_at", timestamp or utc_now_iso())

    async def clear(self, service: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM sync_state WHERE service = ?", (service,))
            await db.commit()
