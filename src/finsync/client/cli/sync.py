"""Sync command for FinSync CLI.

Commands:
- sync: Synchronize records with the server
"""

from __future__ import annotations

import sys

import click

from finsync.client.cli.config import get_local_db_path, require_login


@click.command()
def sync() -> None:
    """Synchronize records with the server.

    Pushes local changes, then pulls remote changes, for every group you
    are a member of.
    """
    from finsync.client.api import RemoteStore
    from finsync.client.state import LocalStore, LocalStoreError
    from finsync.client.sync import SyncEngine

    server_config, user_id = require_login()

    try:
        local = LocalStore(get_local_db_path())
    except LocalStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    with local, RemoteStore(server_config) as remote:
        engine = SyncEngine(local, remote, user_id)
        result = engine.sync(local.get_last_partition())
        if result.active_partition is not None:
            local.set_last_partition(result.active_partition)

    for partition in result.partitions:
        if partition.error:
            click.echo(f"  {partition.partition}: failed ({partition.error})", err=True)
        elif partition.pushed or partition.pulled:
            click.echo(
                f"  {partition.partition}: {partition.pushed} sent, {partition.pulled} received"
            )

    if result.error:
        click.echo(f"Error: {result.error}", err=True)
    click.echo(result.summary())
    if not result.success:
        sys.exit(1)
