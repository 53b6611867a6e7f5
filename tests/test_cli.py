"""Tests for CLI commands - login, sync, ledger, server admin."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from finsync.client.api import AuthenticationError, RemoteGroup
from finsync.client.cli import cli, load_config, save_config
from finsync.client.state import LocalStore
from finsync.client.sync import PartitionResult, SyncResult
from finsync.core.records import Record
from finsync.core.types import RecordKind, TransactionType
from finsync.server.database import Database


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Point the CLI at a temporary config directory."""
    config = tmp_path / ".finsync"
    with patch("finsync.client.cli.config.get_config_dir", return_value=config):
        yield config


@pytest.fixture
def logged_in(config_dir: Path) -> Path:
    """Store a server identity."""
    save_config(
        {"server_url": "http://test", "auth_token": "fs_token", "user_id": "alice"}
    )
    return config_dir


TS = "2024-05-01T12:00:00+00:00"

PERSONAL = RemoteGroup(
    id="personal_alice", name="Personal Ledger", type="personal", admin="alice", members=["alice"]
)


class TestLoginCommand:
    """Tests for 'finsync login'."""

    def test_login_stores_identity(self, runner: CliRunner, config_dir: Path) -> None:
        with patch("finsync.client.api.RemoteStore.list_groups", return_value=[PERSONAL]):
            result = runner.invoke(
                cli, ["login", "--server", "https://ledger.example.com/", "--token", "fs_abc"]
            )

        assert result.exit_code == 0, result.output
        config = load_config()
        assert config["server_url"] == "https://ledger.example.com"
        assert config["auth_token"] == "fs_abc"
        assert config["user_id"] == "alice"

    def test_login_warns_on_plain_http(self, runner: CliRunner, config_dir: Path) -> None:
        with patch("finsync.client.api.RemoteStore.list_groups", return_value=[PERSONAL]):
            result = runner.invoke(cli, ["login", "--server", "http://test", "--token", "fs_abc"])

        assert result.exit_code == 0
        assert "not HTTPS" in result.output

    def test_login_rejected_token(self, runner: CliRunner, config_dir: Path) -> None:
        with patch(
            "finsync.client.api.RemoteStore.list_groups",
            side_effect=AuthenticationError("Invalid or expired token", 401),
        ):
            result = runner.invoke(
                cli, ["login", "--server", "https://test", "--token", "fs_bad"]
            )

        assert result.exit_code == 1
        assert "Invalid or expired token" in result.output
        assert load_config() == {}

    def test_logout(self, runner: CliRunner, logged_in: Path) -> None:
        result = runner.invoke(cli, ["logout"])
        assert result.exit_code == 0
        assert "auth_token" not in load_config()


class TestSyncCommand:
    """Tests for 'finsync sync'."""

    def test_requires_login(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code == 1
        assert "Not logged in" in result.output

    def test_success_prints_summary(self, runner: CliRunner, logged_in: Path) -> None:
        partition = PartitionResult(partition="personal_alice")
        partition.for_kind(RecordKind.TRANSACTIONS).pushed = 2
        outcome = SyncResult(partitions=[partition], active_partition="personal_alice")

        with patch("finsync.client.sync.SyncEngine.sync", return_value=outcome):
            result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 0, result.output
        assert "Sync complete! 2 record(s) sent, 0 record(s) received." in result.output
        with LocalStore(logged_in / "local.db") as store:
            assert store.get_last_partition() == "personal_alice"

    def test_failure_exits_1(self, runner: CliRunner, logged_in: Path) -> None:
        outcome = SyncResult(
            partitions=[PartitionResult(partition="g1", error="Not a member")],
            active_partition="g1",
        )

        with patch("finsync.client.sync.SyncEngine.sync", return_value=outcome):
            result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 1
        assert "Sync failed. Please try again." in result.output


class TestLedgerCommands:
    """Tests for local ledger commands."""

    def test_requires_active_group(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["add-category", "Food"])
        assert result.exit_code == 1
        assert "No active group" in result.output

    def test_add_list_delete(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(
            cli,
            ["add-transaction", "12.5", "--category", "Food", "--date", "2024-05-01", "-g", "g1"],
        )
        assert result.exit_code == 0, result.output

        with LocalStore(config_dir / "local.db") as store:
            (record,) = store.list_active(RecordKind.TRANSACTIONS, "g1")

        result = runner.invoke(cli, ["list", "transactions", "-g", "g1"])
        assert record.key in result.output
        assert "12.50" in result.output

        result = runner.invoke(cli, ["delete", "transactions", record.key])
        assert result.exit_code == 0

        result = runner.invoke(cli, ["list", "transactions", "-g", "g1"])
        assert "No transactions" in result.output

    def test_delete_unknown(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["delete", "categories", "missing"])
        assert result.exit_code == 1

    def test_list_date_range(self, runner: CliRunner, config_dir: Path) -> None:
        with LocalStore(config_dir / "local.db") as store:
            may = store.add_transaction("g1", 5.0, TransactionType.EXPENSE, "Food", "2024-05-10")
            june = store.add_transaction("g1", 7.0, TransactionType.EXPENSE, "Food", "2024-06-10")
            store.put(
                RecordKind.TRANSACTIONS,
                Record(id="undated", group_id="g1", last_modified=TS, fields={"amount": 1.0}),
            )

        result = runner.invoke(
            cli, ["list", "transactions", "-g", "g1", "--from", "2024-05-01", "--to", "2024-05-31"]
        )

        assert result.exit_code == 0, result.output
        assert may.key in result.output
        assert june.key not in result.output
        assert "undated" not in result.output

        result = runner.invoke(cli, ["list", "transactions", "-g", "g1", "--from", "2024-06-01"])
        assert june.key in result.output
        assert may.key not in result.output

    def test_date_range_only_for_transactions(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["list", "categories", "-g", "g1", "--from", "2024-05-01"])
        assert result.exit_code == 1

    def test_delete_unreconciled_integer_id(self, runner: CliRunner, config_dir: Path) -> None:
        """A legacy integer id typed on the command line still finds its row."""
        with LocalStore(config_dir / "local.db") as store:
            store.put(
                RecordKind.CATEGORIES,
                Record(id=7, group_id="g1", last_modified=TS, fields={"name": "Food"}),
            )

        result = runner.invoke(cli, ["delete", "categories", "7"])

        assert result.exit_code == 0, result.output
        with LocalStore(config_dir / "local.db") as store:
            assert store.find(RecordKind.CATEGORIES, 7).deleted is True
            assert store.find(RecordKind.CATEGORIES, "7") is None

    def test_rename_unreconciled_integer_id(self, runner: CliRunner, config_dir: Path) -> None:
        with LocalStore(config_dir / "local.db") as store:
            store.put(
                RecordKind.CATEGORIES,
                Record(id=7, group_id="g1", last_modified=TS, fields={"name": "Food"}),
            )

        result = runner.invoke(cli, ["rename-category", "7", "Groceries"])

        assert result.exit_code == 0, result.output
        with LocalStore(config_dir / "local.db") as store:
            assert store.find(RecordKind.CATEGORIES, 7).fields["name"] == "Groceries"

    def test_uses_last_active_group(self, runner: CliRunner, config_dir: Path) -> None:
        with LocalStore(config_dir / "local.db") as store:
            store.set_last_partition("g7")

        result = runner.invoke(cli, ["add-category", "Rent"])

        assert result.exit_code == 0
        with LocalStore(config_dir / "local.db") as store:
            assert store.find_category_by_name("g7", "Rent") is not None


class TestGroupCommands:
    """Tests for group commands."""

    def test_use_group_requires_membership(self, runner: CliRunner, logged_in: Path) -> None:
        with patch(
            "finsync.client.api.RemoteStore.list_partitions", return_value=["personal_alice"]
        ):
            result = runner.invoke(cli, ["group", "use", "other"])
        assert result.exit_code == 1

    def test_use_group(self, runner: CliRunner, logged_in: Path) -> None:
        with patch(
            "finsync.client.api.RemoteStore.list_partitions",
            return_value=["personal_alice", "flat"],
        ):
            result = runner.invoke(cli, ["group", "use", "flat"])

        assert result.exit_code == 0
        with LocalStore(logged_in / "local.db") as store:
            assert store.get_last_partition() == "flat"

    def test_invite(self, runner: CliRunner, logged_in: Path) -> None:
        send = MagicMock(return_value=4)
        with patch("finsync.client.api.RemoteStore.send_invite", send):
            result = runner.invoke(cli, ["group", "invite", "flat", "bob@example.com"])

        assert result.exit_code == 0
        assert "Invite 4 sent" in result.output
        send.assert_called_once_with("flat", "bob@example.com")


class TestServerCommands:
    """Tests for 'finsync server' admin commands."""

    def test_create_user_prints_token(self, runner: CliRunner, tmp_path: Path) -> None:
        db_path = tmp_path / "server.db"
        result = runner.invoke(
            cli, ["server", "create-user", "alice", "alice@example.com", "--db-path", str(db_path)]
        )

        assert result.exit_code == 0, result.output
        token = result.output.split("Token: ")[1].strip()
        db = Database(db_path)
        try:
            assert db.validate_token(token).user_id == "alice"
            assert db.get_group("personal_alice") is not None
        finally:
            db.close()

    def test_create_duplicate_user(self, runner: CliRunner, tmp_path: Path) -> None:
        db_path = str(tmp_path / "server.db")
        runner.invoke(cli, ["server", "create-user", "alice", "a@example.com", "--db-path", db_path])
        result = runner.invoke(
            cli, ["server", "create-user", "alice", "a@example.com", "--db-path", db_path]
        )
        assert result.exit_code == 1

    def test_expire_invites_missing_db(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(
            cli, ["server", "expire-invites", "--db-path", str(tmp_path / "none.db")]
        )
        assert result.exit_code == 1
        assert "Database not found" in result.output

    def test_expire_invites(self, runner: CliRunner, tmp_path: Path) -> None:
        db_path = tmp_path / "server.db"
        Database(db_path).close()

        result = runner.invoke(
            cli, ["server", "expire-invites", "-d", "3", "--db-path", str(db_path)]
        )

        assert result.exit_code == 0
        assert "No invites to expire." in result.output
