"""Command-line interface for FinSync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- login / logout: Store or forget the server identity
- sync: Synchronize records with the server
- add-transaction, add-category, rename-category, delete, list: Ledger
- group: Group management
- invites: Invite management
- server: Server administration commands
"""

from __future__ import annotations

import logging

import click

from finsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_local_db_path,
    load_config,
    save_config,
)
from finsync.client.cli.groups import group, invites
from finsync.client.cli.ledger import (
    add_category,
    add_transaction,
    delete,
    list_records,
    rename_category,
)
from finsync.client.cli.login import login, logout
from finsync.client.cli.server import server
from finsync.client.cli.sync import sync


@click.group()
@click.version_option(package_name="finsync")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs.")
def cli(verbose: bool) -> None:
    """FinSync - shared ledgers synchronized across devices."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Identity commands
cli.add_command(login)
cli.add_command(logout)

# Sync command
cli.add_command(sync)

# Ledger commands
cli.add_command(add_transaction)
cli.add_command(add_category)
cli.add_command(rename_category)
cli.add_command(delete)
cli.add_command(list_records)

# Group commands
cli.add_command(group)
cli.add_command(invites)

# Server admin commands
cli.add_command(server)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "get_local_db_path",
    "load_config",
    "save_config",
]
