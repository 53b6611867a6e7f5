"""Group and invite commands for FinSync CLI.

Commands:
- group list / create / use / delete / leave / remove-member / invite
- invites list / accept / decline
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

import click

from finsync.client.api import APIError, RemoteStore
from finsync.client.cli.config import get_local_db_path, require_login
from finsync.client.state import LocalStore

T = TypeVar("T")


@contextmanager
def _remote() -> Iterator[RemoteStore]:
    server_config, _user_id = require_login()
    with RemoteStore(server_config) as remote:
        yield remote


def _call(func: Callable[[], T]) -> T:
    """Run a remote call, exiting with an error message on failure."""
    try:
        return func()
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
def group() -> None:
    """Manage groups (shared ledgers)."""


@group.command("list")
def list_groups() -> None:
    """List the groups you are a member of."""
    with _remote() as remote:
        groups = _call(remote.list_groups)
    with LocalStore(get_local_db_path()) as store:
        current = store.get_last_partition()

    for g in groups:
        marker = "*" if g.id == current else " "
        click.echo(f"{marker} {g.id}  {g.name} ({g.type}, {len(g.members)} member(s))")


@group.command("create")
@click.argument("name")
def create_group(name: str) -> None:
    """Create a shared group called NAME."""
    with _remote() as remote:
        created = _call(lambda: remote.create_group(name))
    click.echo(f"Created group '{created.name}' ({created.id})")


@group.command("use")
@click.argument("group_id")
def use_group(group_id: str) -> None:
    """Make GROUP_ID the active group for ledger commands."""
    with _remote() as remote:
        partitions = _call(remote.list_partitions)
    if group_id not in partitions:
        click.echo(f"Error: You are not a member of group {group_id}.", err=True)
        sys.exit(1)
    with LocalStore(get_local_db_path()) as store:
        store.set_last_partition(group_id)
    click.echo(f"Active group: {group_id}")


@group.command("delete")
@click.argument("group_id")
@click.confirmation_option(prompt="Delete this group and all of its records?")
def delete_group(group_id: str) -> None:
    """Delete GROUP_ID (admin only)."""
    with _remote() as remote:
        _call(lambda: remote.delete_group(group_id))
    click.echo(f"Deleted group {group_id}")


@group.command("leave")
@click.argument("group_id")
def leave_group(group_id: str) -> None:
    """Leave GROUP_ID."""
    with _remote() as remote:
        _call(lambda: remote.leave_group(group_id))
    click.echo(f"Left group {group_id}")


@group.command("remove-member")
@click.argument("group_id")
@click.argument("user_id")
def remove_member(group_id: str, user_id: str) -> None:
    """Remove USER_ID from GROUP_ID (admin only)."""
    with _remote() as remote:
        _call(lambda: remote.remove_member(group_id, user_id))
    click.echo(f"Removed {user_id} from group {group_id}")


@group.command("invite")
@click.argument("group_id")
@click.argument("email")
def invite(group_id: str, email: str) -> None:
    """Invite the user with EMAIL to GROUP_ID (admin only)."""
    with _remote() as remote:
        invite_id = _call(lambda: remote.send_invite(group_id, email))
    click.echo(f"Invite {invite_id} sent to {email}")


@click.group()
def invites() -> None:
    """Manage invites you received."""


@invites.command("list")
def list_invites() -> None:
    """List pending invites."""
    with _remote() as remote:
        pending = _call(remote.list_invites)
    if not pending:
        click.echo("No pending invites.")
        return
    for i in pending:
        click.echo(f"  {i.id}  {i.group_name} ({i.group_id}) from {i.inviter_name}")


@invites.command("accept")
@click.argument("group_id")
@click.argument("invite_id", type=int)
def accept_invite(group_id: str, invite_id: int) -> None:
    """Accept invite INVITE_ID to GROUP_ID."""
    with _remote() as remote:
        _call(lambda: remote.accept_invite(group_id, invite_id))
    click.echo(f"Joined group {group_id}. Run 'finsync sync' to fetch its records.")


@invites.command("decline")
@click.argument("group_id")
@click.argument("invite_id", type=int)
def decline_invite(group_id: str, invite_id: int) -> None:
    """Decline invite INVITE_ID to GROUP_ID."""
    with _remote() as remote:
        _call(lambda: remote.decline_invite(group_id, invite_id))
    click.echo("Invite declined.")
