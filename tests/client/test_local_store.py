"""Tests for the local record store."""

import json
import sqlite3
from collections.abc import Generator
from pathlib import Path

import pytest

from finsync.client.state import (
    SCHEMA_VERSION,
    LocalStore,
    PartitionMismatchError,
    RecordNotFoundError,
    SchemaVersionError,
)
from finsync.core.records import Record
from finsync.core.types import RecordKind, TransactionType

TS = "2024-05-01T12:00:00+00:00"


@pytest.fixture
def store(tmp_path: Path) -> Generator[LocalStore, None, None]:
    """Create a test local store."""
    local = LocalStore(tmp_path / "local.db")
    yield local
    local.close()


def _index_names(db_path: Path) -> set[str]:
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'").fetchall()
    finally:
        conn.close()
    return {row[0] for row in rows}


class TestMigrations:
    """Tests for schema versioning."""

    def test_new_store_is_current(self, store: LocalStore) -> None:
        """A fresh file is created at the latest version."""
        assert store.schema_version == SCHEMA_VERSION

    def test_reopen_is_idempotent(self, tmp_path: Path) -> None:
        """Opening twice must not fail nor lose data."""
        db_path = tmp_path / "local.db"
        with LocalStore(db_path) as first:
            first.put(RecordKind.CATEGORIES, Record(id="c1", group_id="g1", last_modified=TS))
        with LocalStore(db_path) as second:
            assert second.schema_version == SCHEMA_VERSION
            assert second.find(RecordKind.CATEGORIES, "c1") is not None

    def test_upgrades_older_file_preserving_rows(self, tmp_path: Path) -> None:
        """A file at version 2 gains the partition indexes and keeps its rows."""
        db_path = tmp_path / "local.db"
        conn = sqlite3.connect(db_path)
        conn.execute("""
            CREATE TABLE categories (
                id_key TEXT NOT NULL, id_type TEXT NOT NULL, group_id TEXT NOT NULL,
                last_modified TEXT, deleted INTEGER NOT NULL DEFAULT 0,
                data TEXT NOT NULL, PRIMARY KEY (id_key, id_type)
            )
        """)
        conn.execute("""
            CREATE TABLE transactions (
                id_key TEXT NOT NULL, id_type TEXT NOT NULL, group_id TEXT NOT NULL,
                last_modified TEXT, deleted INTEGER NOT NULL DEFAULT 0,
                data TEXT NOT NULL, PRIMARY KEY (id_key, id_type)
            )
        """)
        conn.execute("CREATE TABLE preferences (key TEXT PRIMARY KEY, value TEXT)")
        conn.execute(
            "INSERT INTO categories VALUES (?, ?, ?, ?, ?, ?)",
            ("5", "int", "g1", None, 0, json.dumps({"id": 5, "groupId": "g1", "name": "Food"})),
        )
        conn.execute("PRAGMA user_version = 2")
        conn.commit()
        conn.close()

        with LocalStore(db_path) as local:
            assert local.schema_version == SCHEMA_VERSION
            legacy = local.find(RecordKind.CATEGORIES, 5)
            assert legacy is not None
            assert legacy.fields == {"name": "Food"}
            assert legacy.last_modified is None

        assert {"idx_categories_group_id", "idx_transactions_group_id"} <= _index_names(db_path)

    def test_newer_file_is_refused(self, tmp_path: Path) -> None:
        """A file from a newer client must not be touched."""
        db_path = tmp_path / "local.db"
        conn = sqlite3.connect(db_path)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
        conn.commit()
        conn.close()

        with pytest.raises(SchemaVersionError):
            LocalStore(db_path)


class TestRecordOperations:
    """Tests for find/get/put/list."""

    def test_put_and_find(self, store: LocalStore) -> None:
        """Should store and return a whole record."""
        record = Record(id="t1", group_id="g1", last_modified=TS, fields={"amount": 3.0})
        store.put(RecordKind.TRANSACTIONS, record)

        found = store.find(RecordKind.TRANSACTIONS, "t1")
        assert found == record

    def test_int_and_str_ids_are_distinct(self, store: LocalStore) -> None:
        """Legacy 5 and canonical "5" are two rows."""
        store.put(RecordKind.CATEGORIES, Record(id=5, group_id="g1", last_modified=TS))
        store.put(RecordKind.CATEGORIES, Record(id="5", group_id="g1", last_modified=TS))

        ids = [r.id for r in store.list_by_partition(RecordKind.CATEGORIES, "g1")]
        assert sorted(type(i).__name__ for i in ids) == ["int", "str"]

    def test_get_filters_by_partition(self, store: LocalStore) -> None:
        """get only returns records of the requested partition."""
        store.put(RecordKind.TRANSACTIONS, Record(id="t1", group_id="g1", last_modified=TS))
        assert store.get(RecordKind.TRANSACTIONS, "g1", "t1") is not None
        assert store.get(RecordKind.TRANSACTIONS, "g2", "t1") is None

    def test_put_refuses_partition_change(self, store: LocalStore) -> None:
        """A record never moves between partitions."""
        store.put(RecordKind.TRANSACTIONS, Record(id="t1", group_id="g1", last_modified=TS))
        with pytest.raises(PartitionMismatchError) as exc_info:
            store.put(RecordKind.TRANSACTIONS, Record(id="t1", group_id="g2", last_modified=TS))
        assert exc_info.value.stored_partition == "g1"
        assert exc_info.value.incoming_partition == "g2"
        assert store.find(RecordKind.TRANSACTIONS, "t1").group_id == "g1"

    def test_list_by_partition_includes_tombstones(self, store: LocalStore) -> None:
        """Tombstones are listed; list_active hides them."""
        store.put(RecordKind.TRANSACTIONS, Record(id="a", group_id="g1", last_modified=TS))
        store.put(
            RecordKind.TRANSACTIONS, Record(id="b", group_id="g1", last_modified=TS, deleted=True)
        )
        store.put(RecordKind.TRANSACTIONS, Record(id="c", group_id="g2", last_modified=TS))

        assert {r.key for r in store.list_by_partition(RecordKind.TRANSACTIONS, "g1")} == {"a", "b"}
        assert [r.key for r in store.list_active(RecordKind.TRANSACTIONS, "g1")] == ["a"]

    def test_delete_key_removes_exact_row(self, store: LocalStore) -> None:
        """delete_key only removes the row with the same id type."""
        store.put(RecordKind.CATEGORIES, Record(id=5, group_id="g1", last_modified=TS))
        store.put(RecordKind.CATEGORIES, Record(id="5", group_id="g1", last_modified=TS))

        assert store.delete_key(RecordKind.CATEGORIES, 5) is True
        assert store.find(RecordKind.CATEGORIES, 5) is None
        assert store.find(RecordKind.CATEGORIES, "5") is not None
        assert store.delete_key(RecordKind.CATEGORIES, 5) is False


class TestSoftDelete:
    """Tests for soft_delete."""

    def test_tombstones_and_bumps_timestamp(self, store: LocalStore) -> None:
        """Soft delete keeps the row with deleted=True and a newer timestamp."""
        store.put(RecordKind.TRANSACTIONS, Record(id="t1", group_id="g1", last_modified=TS))
        tombstone = store.soft_delete(RecordKind.TRANSACTIONS, "t1")

        stored = store.find(RecordKind.TRANSACTIONS, "t1")
        assert stored.deleted is True
        assert stored == tombstone
        assert stored.modified_at > Record(id="t1", group_id="g1", last_modified=TS).modified_at

    def test_unknown_id_raises(self, store: LocalStore) -> None:
        """Deleting a missing record is an error."""
        with pytest.raises(RecordNotFoundError):
            store.soft_delete(RecordKind.TRANSACTIONS, "missing")


class TestLedgerWrites:
    """Tests for user-facing writes."""

    def test_add_transaction(self, store: LocalStore) -> None:
        """New transactions get a canonical id and a timestamp."""
        record = store.add_transaction("g1", 42.0, TransactionType.EXPENSE, "Food", "2024-05-01")

        assert isinstance(record.id, str)
        assert record.last_modified is not None
        assert record.deleted is False
        assert record.fields["type"] == "expense"
        assert store.find(RecordKind.TRANSACTIONS, record.id) == record

    def test_transactions_between(self, store: LocalStore) -> None:
        """Only active transactions inside the range are returned."""
        inside = store.add_transaction("g1", 1.0, TransactionType.INCOME, "Pay", "2024-05-10")
        store.add_transaction("g1", 2.0, TransactionType.EXPENSE, "Food", "2024-06-10")
        removed = store.add_transaction("g1", 3.0, TransactionType.EXPENSE, "Food", "2024-05-11")
        store.soft_delete(RecordKind.TRANSACTIONS, removed.id)

        found = store.transactions_between("g1", "2024-05-01", "2024-05-31")
        assert [r.id for r in found] == [inside.id]

    def test_transactions_between_skips_undated(self, store: LocalStore) -> None:
        """Pulled transactions without a readable date are left out."""
        dated = store.add_transaction("g1", 1.0, TransactionType.INCOME, "Pay", "2024-05-10")
        for record_id, fields in (("nodate", {"amount": 2.0}), ("baddate", {"date": "soon"})):
            store.put(
                RecordKind.TRANSACTIONS,
                Record(id=record_id, group_id="g1", last_modified=TS, fields=fields),
            )

        found = store.transactions_between("g1", "2024-05-01", "2024-05-31")
        assert [r.id for r in found] == [dated.id]

    def test_add_category_returns_existing_active(self, store: LocalStore) -> None:
        """Adding an existing name returns the same category."""
        first = store.add_category("g1", "Food")
        again = store.add_category("g1", "Food")
        assert again.id == first.id

    def test_add_category_restores_tombstone(self, store: LocalStore) -> None:
        """Adding a tombstoned name revives it under the same id."""
        first = store.add_category("g1", "Food", "#111111")
        store.soft_delete(RecordKind.CATEGORIES, first.id)

        restored = store.add_category("g1", "Food", "#222222")

        assert restored.id == first.id
        assert restored.deleted is False
        assert restored.fields["color"] == "#222222"
        assert len(store.list_by_partition(RecordKind.CATEGORIES, "g1")) == 1

    def test_update_category(self, store: LocalStore) -> None:
        """Renaming a category bumps its timestamp."""
        category = store.add_category("g1", "Food")
        updated = store.update_category(category.id, "Groceries", "#123456")

        assert updated.fields["name"] == "Groceries"
        assert updated.modified_at > category.modified_at

    def test_update_unknown_category(self, store: LocalStore) -> None:
        """Renaming a missing category is an error."""
        with pytest.raises(RecordNotFoundError):
            store.update_category("missing", "x", "#000000")


class TestPreferences:
    """Tests for preferences."""

    def test_last_partition(self, store: LocalStore) -> None:
        """The last active partition is persisted."""
        assert store.get_last_partition() is None
        store.set_last_partition("g1")
        assert store.get_last_partition() == "g1"

    def test_last_sync_at(self, store: LocalStore) -> None:
        """The last successful sync time is persisted."""
        store.set_last_sync_at(TS)
        assert store.get_last_sync_at() == TS
