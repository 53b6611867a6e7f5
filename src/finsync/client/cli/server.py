"""Server administration commands for FinSync CLI.

Commands:
- server run: Run the HTTP server
- server create-user: Create a user and issue its first token
- server issue-token: Issue another token for an existing user
- server expire-invites: Delete stale invites
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click


def _resolve_db_path(db_path: str | None) -> Path:
    return Path(db_path or os.environ.get("FINSYNC_DB_PATH", "finsync.db"))


db_path_option = click.option(
    "--db-path",
    type=click.Path(),
    default=None,
    help="Path to database file (default: FINSYNC_DB_PATH or ./finsync.db).",
)


@click.group()
def server() -> None:
    """Server management commands.

    These commands are for server administrators to manage the FinSync server.
    """


@server.command("run")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@db_path_option
def run_server(host: str, port: int, db_path: str | None) -> None:
    """Run the FinSync HTTP server."""
    import uvicorn

    if db_path:
        os.environ["FINSYNC_DB_PATH"] = db_path
    uvicorn.run("finsync.server.app:app_factory", factory=True, host=host, port=port)


@server.command("create-user")
@click.argument("user_id")
@click.argument("email")
@click.option("--name", default=None, help="Display name.")
@db_path_option
def create_user(user_id: str, email: str, name: str | None, db_path: str | None) -> None:
    """Create the user USER_ID with EMAIL and print an access token."""
    from sqlalchemy.exc import IntegrityError

    from finsync.server.database import Database

    db = Database(_resolve_db_path(db_path))
    try:
        db.create_user(user_id, email, name)
        raw_token, _token = db.create_token(user_id)
        db.ensure_personal_group(user_id)
    except IntegrityError:
        click.echo(f"Error: User {user_id} or email {email} already exists.", err=True)
        sys.exit(1)
    finally:
        db.close()

    click.echo(f"Created user {user_id}.")
    click.echo(f"Token: {raw_token}")


@server.command("issue-token")
@click.argument("user_id")
@click.option("--expires-days", type=int, default=None, help="Token lifetime in days.")
@db_path_option
def issue_token(user_id: str, expires_days: int | None, db_path: str | None) -> None:
    """Issue a new access token for USER_ID."""
    from datetime import timedelta

    from finsync.server.database import Database

    db = Database(_resolve_db_path(db_path))
    try:
        if db.get_user(user_id) is None:
            click.echo(f"Error: User not found: {user_id}", err=True)
            sys.exit(1)
        expires_in = timedelta(days=expires_days) if expires_days else None
        raw_token, _token = db.create_token(user_id, expires_in)
    finally:
        db.close()
    click.echo(f"Token: {raw_token}")


@server.command("expire-invites")
@click.option(
    "--older-than-days",
    "-d",
    type=int,
    default=None,
    help="Delete invites older than N days (default: FINSYNC_INVITE_RETENTION_DAYS or 7).",
)
@db_path_option
def expire_invites_cmd(older_than_days: int | None, db_path: str | None) -> None:
    """Delete invites that were never answered.

    This command can be run manually or via cron; the server also runs it
    daily.

    Examples:

        # Expire using server defaults (7 days)
        finsync server expire-invites

        # Expire invites older than 2 days
        finsync server expire-invites --older-than-days 2
    """
    from finsync.server.database import DEFAULT_INVITE_RETENTION_DAYS, Database
    from finsync.server.scheduler import expire_invites

    default_days = int(
        os.environ.get("FINSYNC_INVITE_RETENTION_DAYS", str(DEFAULT_INVITE_RETENTION_DAYS))
    )
    days = older_than_days if older_than_days is not None else default_days

    db_file = _resolve_db_path(db_path)
    if not db_file.exists():
        click.echo(f"Error: Database not found: {db_file}", err=True)
        click.echo("Make sure the server has been run at least once.", err=True)
        sys.exit(1)

    click.echo(f"Database: {db_file}")
    click.echo(f"Expiring invites older than {days} days...")

    db = Database(db_file)
    try:
        deleted = expire_invites(db, days)
    finally:
        db.close()

    if deleted > 0:
        click.echo(f"Expired {deleted} invite(s).")
    else:
        click.echo("No invites to expire.")
