"""Local record store for the sync client.

This module provides:
- LocalStore: SQLite-based, partition-indexed storage of records
- LocalStoreError and subclasses

Architecture:
    Each collection (transactions, categories) is one table keyed by the
    record id *and* its Python type, so a legacy integer id ``5`` and the
    canonical string id ``"5"`` are two distinct rows, exactly as the
    legacy schema stored them. The full record document lives in a JSON
    column; ``group_id``, ``last_modified`` and ``deleted`` are copied out
    for indexing.

    The schema version is tracked with ``PRAGMA user_version``. Migrations
    only add tables, columns and indexes, and every migration step is safe
    to replay.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Callable
from pathlib import Path

from finsync.core.records import (
    DEFAULT_CATEGORY_COLOR,
    Record,
    new_record_id,
    now_iso,
    parse_timestamp,
)
from finsync.core.types import RecordKind, TransactionType

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3


class LocalStoreError(Exception):
    """Base exception for local store errors."""


class RecordNotFoundError(LocalStoreError):
    """Record does not exist in the local store."""


class PartitionMismatchError(LocalStoreError):
    """A write would move an existing record to another partition."""

    def __init__(self, kind: RecordKind, record_id: str | int, stored: str, incoming: str) -> None:
        self.kind = kind
        self.record_id = record_id
        self.stored_partition = stored
        self.incoming_partition = incoming
        super().__init__(
            f"{kind.value} {record_id!r} belongs to group {stored!r}, "
            f"refusing to write it under {incoming!r}"
        )


class SchemaVersionError(LocalStoreError):
    """Database was written by a newer schema than this code supports."""


def _id_type(record_id: str | int) -> str:
    return "int" if isinstance(record_id, int) else "str"


def _create_collections(conn: sqlite3.Connection) -> None:
    for kind in RecordKind:
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {kind.value} (
                id_key TEXT NOT NULL,
                id_type TEXT NOT NULL,
                group_id TEXT NOT NULL,
                last_modified TEXT,
                deleted INTEGER NOT NULL DEFAULT 0,
                data TEXT NOT NULL,
                PRIMARY KEY (id_key, id_type)
            )
        """)


def _create_preferences(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS preferences (
            key TEXT PRIMARY KEY,
            value TEXT
        )
    """)


def _add_partition_indexes(conn: sqlite3.Connection) -> None:
    for kind in RecordKind:
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{kind.value}_group_id ON {kind.value} (group_id)"
        )


# Ordered migrations; index i upgrades user_version i -> i + 1
MIGRATIONS: list[Callable[[sqlite3.Connection], None]] = [
    _create_collections,
    _create_preferences,
    _add_partition_indexes,
]


class LocalStore:
    """SQLite-based local store for transactions and categories.

    Every method takes the collection (``RecordKind``) explicitly. Reads by
    partition include tombstones; only ``list_active`` filters them out.
    """

    def __init__(self, db_path: Path) -> None:
        """Open (and upgrade if needed) the local store.

        Args:
            db_path: Path to SQLite database file.

        Raises:
            SchemaVersionError: If the file was written by a newer version.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._migrate()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> LocalStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # === Schema ===

    @property
    def schema_version(self) -> int:
        """Current schema version of the database file."""
        row = self._conn.execute("PRAGMA user_version").fetchone()
        return int(row[0])

    def _migrate(self) -> None:
        """Apply pending migrations."""
        with self._lock:
            version = self.schema_version
            if version > SCHEMA_VERSION:
                raise SchemaVersionError(
                    f"Local store {self._db_path} is at schema version {version}, "
                    f"this client supports up to {SCHEMA_VERSION}"
                )
            for target in range(version, SCHEMA_VERSION):
                logger.info("Upgrading local store to schema version %d", target + 1)
                self._conn.execute("BEGIN")
                try:
                    MIGRATIONS[target](self._conn)
                    # PRAGMA does not accept bound parameters
                    self._conn.execute(f"PRAGMA user_version = {target + 1}")
                    self._conn.execute("COMMIT")
                except sqlite3.Error:
                    self._conn.execute("ROLLBACK")
                    raise

    # === Record operations ===

    def find(self, kind: RecordKind, record_id: str | int) -> Record | None:
        """Get a record by its exact id, whatever its partition.

        Args:
            kind: Collection to read.
            record_id: Record id; ``5`` and ``"5"`` are different keys.

        Returns:
            Record if found, None otherwise.
        """
        with self._lock:
            row = self._conn.execute(
                f"SELECT data FROM {kind.value} WHERE id_key = ? AND id_type = ?",
                (str(record_id), _id_type(record_id)),
            ).fetchone()
        if row is None:
            return None
        return Record.from_dict(json.loads(row["data"]))

    def get(self, kind: RecordKind, partition: str, record_id: str | int) -> Record | None:
        """Get a record by id within a partition.

        Returns:
            Record if found in that partition, None otherwise.
        """
        record = self.find(kind, record_id)
        if record is None or record.group_id != partition:
            return None
        return record

    def list_by_partition(self, kind: RecordKind, partition: str) -> list[Record]:
        """List every record of a partition, tombstones included."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT data FROM {kind.value} WHERE group_id = ? ORDER BY id_key, id_type",
                (partition,),
            ).fetchall()
        return [Record.from_dict(json.loads(row["data"])) for row in rows]

    def list_active(self, kind: RecordKind, partition: str) -> list[Record]:
        """List the records of a partition that are not tombstoned."""
        return [r for r in self.list_by_partition(kind, partition) if not r.deleted]

    def put(self, kind: RecordKind, record: Record) -> None:
        """Upsert a record by its exact id.

        Raises:
            PartitionMismatchError: If a record with the same id is already
                stored under a different partition.
        """
        with self._lock:
            existing = self._conn.execute(
                f"SELECT group_id FROM {kind.value} WHERE id_key = ? AND id_type = ?",
                (record.key, _id_type(record.id)),
            ).fetchone()
            if existing is not None and existing["group_id"] != record.group_id:
                raise PartitionMismatchError(kind, record.id, existing["group_id"], record.group_id)
            self._conn.execute(
                f"""
                INSERT OR REPLACE INTO {kind.value} (
                    id_key, id_type, group_id, last_modified, deleted, data
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.key,
                    _id_type(record.id),
                    record.group_id,
                    record.last_modified,
                    1 if record.deleted else 0,
                    json.dumps(record.to_dict()),
                ),
            )

    def delete_key(self, kind: RecordKind, record_id: str | int) -> bool:
        """Physically remove one row by its exact id.

        Only the ID reconciler uses this; user deletes go through soft_delete.

        Returns:
            True if a row was removed.
        """
        with self._lock:
            cursor = self._conn.execute(
                f"DELETE FROM {kind.value} WHERE id_key = ? AND id_type = ?",
                (str(record_id), _id_type(record_id)),
            )
        return cursor.rowcount > 0

    def soft_delete(self, kind: RecordKind, record_id: str | int) -> Record:
        """Tombstone a record and refresh its timestamp.

        Returns:
            The tombstoned record.

        Raises:
            RecordNotFoundError: If no record has this id.
        """
        with self._lock:
            record = self.find(kind, record_id)
            if record is None:
                raise RecordNotFoundError(f"{kind.value} {record_id!r} not found")
            tombstone = record.evolve(deleted=True)
            self.put(kind, tombstone)
        return tombstone

    # === User-facing writes ===

    def add_transaction(
        self,
        partition: str,
        amount: float,
        txn_type: TransactionType,
        category: str,
        date: str,
        note: str = "",
    ) -> Record:
        """Create a new transaction in a partition."""
        record = Record(
            id=new_record_id(),
            group_id=partition,
            last_modified=now_iso(),
            deleted=False,
            fields={
                "amount": amount,
                "type": TransactionType(txn_type).value,
                "category": category,
                "date": date,
                "note": note,
            },
        )
        self.put(RecordKind.TRANSACTIONS, record)
        return record

    def transactions_between(self, partition: str, start: str, end: str) -> list[Record]:
        """List active transactions whose date falls in [start, end].

        Transactions without a readable ``date`` are left out.
        """
        start_at = parse_timestamp(start)
        end_at = parse_timestamp(end)
        found = []
        for record in self.list_active(RecordKind.TRANSACTIONS, partition):
            try:
                when = parse_timestamp(record.fields.get("date"))
            except ValueError:
                continue
            if start_at <= when <= end_at:
                found.append(record)
        return found

    def find_category_by_name(self, partition: str, name: str) -> Record | None:
        """Get a category by name within a partition, tombstones included."""
        for record in self.list_by_partition(RecordKind.CATEGORIES, partition):
            if record.fields.get("name") == name:
                return record
        return None

    def add_category(
        self,
        partition: str,
        name: str,
        color: str = DEFAULT_CATEGORY_COLOR,
    ) -> Record:
        """Create a category, or restore a tombstoned one with the same name.

        An active category with the same name is returned unchanged.
        """
        with self._lock:
            existing = self.find_category_by_name(partition, name)
            if existing is not None:
                if not existing.deleted:
                    return existing
                restored = existing.evolve(deleted=False, color=color)
                self.put(RecordKind.CATEGORIES, restored)
                return restored

            record = Record(
                id=new_record_id(),
                group_id=partition,
                last_modified=now_iso(),
                deleted=False,
                fields={"name": name, "color": color},
            )
            self.put(RecordKind.CATEGORIES, record)
            return record

    def update_category(self, record_id: str | int, name: str, color: str) -> Record:
        """Rename or recolor a category.

        Raises:
            RecordNotFoundError: If no category has this id.
        """
        with self._lock:
            record = self.find(RecordKind.CATEGORIES, record_id)
            if record is None:
                raise RecordNotFoundError(f"categories {record_id!r} not found")
            updated = record.evolve(deleted=False, name=name, color=color)
            self.put(RecordKind.CATEGORIES, updated)
        return updated

    # === Preferences ===

    def get_preference(self, key: str) -> str | None:
        """Get a preference value."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM preferences WHERE key = ?",
                (key,),
            ).fetchone()
        return row["value"] if row else None

    def set_preference(self, key: str, value: str) -> None:
        """Set a preference value."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO preferences (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_last_partition(self) -> str | None:
        """Get the last active partition."""
        return self.get_preference("last_partition")

    def set_last_partition(self, partition: str) -> None:
        """Persist the last active partition."""
        self.set_preference("last_partition", partition)

    def get_last_sync_at(self) -> str | None:
        """Get the ISO timestamp of the last successful sync."""
        return self.get_preference("last_sync_at")

    def set_last_sync_at(self, timestamp: str | None = None) -> None:
        """Record a successful sync."""
        self.set_preference("last_sync_at", timestamp or now_iso())


__all__ = [
    "LocalStore",
    "LocalStoreError",
    "PartitionMismatchError",
    "RecordNotFoundError",
    "SCHEMA_VERSION",
    "SchemaVersionError",
]
