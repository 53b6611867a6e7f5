"""Ledger commands for FinSync CLI.

Records are written to the local store only; run 'finsync sync' to send
them to the server.

Commands:
- add-transaction: Record an income or expense
- add-category: Create (or restore) a category
- rename-category: Rename or recolor a category
- delete: Delete a transaction or category
- list: List active records of the current group, optionally by date range
"""

from __future__ import annotations

import sys
from datetime import date as date_type
from datetime import datetime

import click

from finsync.client.cli.config import get_local_db_path
from finsync.client.state import LocalStore, LocalStoreError, RecordNotFoundError
from finsync.core.records import DEFAULT_CATEGORY_COLOR
from finsync.core.types import RecordKind, TransactionType


def _open_store() -> LocalStore:
    try:
        return LocalStore(get_local_db_path())
    except LocalStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _current_group(store: LocalStore, group: str | None) -> str:
    partition = group or store.get_last_partition()
    if partition is None:
        click.echo("Error: No active group. Run 'finsync sync' or pass --group.", err=True)
        sys.exit(1)
    return partition


def _stored_id(store: LocalStore, kind: RecordKind, record_id: str) -> str | int:
    """Map a typed-in id to the stored one, including unreconciled integer ids."""
    if store.find(kind, record_id) is None and record_id.isdigit():
        return int(record_id)
    return record_id


group_option = click.option(
    "--group",
    "-g",
    default=None,
    help="Group id (default: last active group).",
)


@click.command("add-transaction")
@click.argument("amount", type=float)
@click.option(
    "--type",
    "txn_type",
    type=click.Choice([t.value for t in TransactionType]),
    default=TransactionType.EXPENSE.value,
    show_default=True,
)
@click.option("--category", "-c", required=True, help="Category name.")
@click.option("--date", "txn_date", default=None, help="Date (YYYY-MM-DD, default: today).")
@click.option("--note", "-n", default="", help="Free-form note.")
@group_option
def add_transaction(
    amount: float,
    txn_type: str,
    category: str,
    txn_date: str | None,
    note: str,
    group: str | None,
) -> None:
    """Record an income or expense of AMOUNT."""
    with _open_store() as store:
        partition = _current_group(store, group)
        record = store.add_transaction(
            partition,
            amount,
            TransactionType(txn_type),
            category,
            txn_date or date_type.today().isoformat(),
            note,
        )
    click.echo(f"Added {txn_type} of {amount:.2f} ({category}) as {record.key}")


@click.command("add-category")
@click.argument("name")
@click.option("--color", default=DEFAULT_CATEGORY_COLOR, show_default=True)
@group_option
def add_category(name: str, color: str, group: str | None) -> None:
    """Create a category called NAME."""
    with _open_store() as store:
        partition = _current_group(store, group)
        record = store.add_category(partition, name, color)
    click.echo(f"Category '{name}' is {record.key}")


@click.command("rename-category")
@click.argument("record_id")
@click.argument("name")
@click.option("--color", default=DEFAULT_CATEGORY_COLOR, show_default=True)
def rename_category(record_id: str, name: str, color: str) -> None:
    """Rename the category RECORD_ID to NAME."""
    with _open_store() as store:
        try:
            store.update_category(_stored_id(store, RecordKind.CATEGORIES, record_id), name, color)
        except RecordNotFoundError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    click.echo(f"Category {record_id} renamed to '{name}'")


@click.command()
@click.argument("kind", type=click.Choice([k.value for k in RecordKind]))
@click.argument("record_id")
def delete(kind: str, record_id: str) -> None:
    """Delete the record RECORD_ID of KIND.

    The record is kept as a tombstone so the deletion reaches other devices.
    """
    with _open_store() as store:
        try:
            store.soft_delete(RecordKind(kind), _stored_id(store, RecordKind(kind), record_id))
        except RecordNotFoundError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    click.echo(f"Deleted {kind} {record_id}")


@click.command("list")
@click.argument(
    "kind",
    type=click.Choice([k.value for k in RecordKind]),
    default=RecordKind.TRANSACTIONS.value,
)
@click.option(
    "--from",
    "start",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Only transactions dated on or after this day.",
)
@click.option(
    "--to",
    "end",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Only transactions dated on or before this day.",
)
@group_option
def list_records(
    kind: str,
    start: datetime | None,
    end: datetime | None,
    group: str | None,
) -> None:
    """List active records of KIND in the current group."""
    dated = start is not None or end is not None
    if dated and kind != RecordKind.TRANSACTIONS.value:
        click.echo("Error: --from/--to only apply to transactions.", err=True)
        sys.exit(1)

    with _open_store() as store:
        partition = _current_group(store, group)
        if dated:
            records = store.transactions_between(
                partition,
                (start or datetime.min).date().isoformat(),
                (end or datetime.max).date().isoformat(),
            )
        else:
            records = store.list_active(RecordKind(kind), partition)

    if not records:
        click.echo(f"No {kind} in group {partition}.")
        return

    click.echo(f"{kind.capitalize()} in group {partition}:")
    for record in records:
        f = record.fields
        if kind == RecordKind.TRANSACTIONS.value:
            click.echo(
                f"  {record.key}  {f.get('date', '?')}  {f.get('type', '?'):<7} "
                f"{float(f.get('amount', 0)):>10.2f}  {f.get('category', '')}  {f.get('note', '')}"
            )
        else:
            click.echo(f"  {record.key}  {f.get('name', '?')}  {f.get('color', '')}")
