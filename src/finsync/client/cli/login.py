"""Login command for FinSync CLI.

Commands:
- login: Store the server URL and token of this device
- logout: Forget the stored identity
"""

from __future__ import annotations

import sys

import click

from finsync.client.cli.config import load_config, save_config


@click.command()
@click.option(
    "--server",
    required=True,
    help="Server URL (e.g., http://localhost:8000).",
)
@click.option(
    "--token",
    required=True,
    help="Access token issued by the server admin.",
)
def login(server: str, token: str) -> None:
    """Log in to a FinSync server with an access token.

    The token is checked against the server and the user id is read from
    the personal group the server returns.
    """
    from finsync.client.api import APIError, AuthenticationError, RemoteStore
    from finsync.core.config import ServerConfig
    from finsync.core.types import GroupType

    server_config = ServerConfig(server_url=server, token=token)
    if not server_config.is_secure:
        click.echo("Warning: server URL is not HTTPS, the token is sent in clear text.", err=True)

    try:
        with RemoteStore(server_config) as remote:
            groups = remote.list_groups()
    except AuthenticationError:
        click.echo("Error: Invalid or expired token.", err=True)
        sys.exit(1)
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    personal = next((g for g in groups if g.type == GroupType.PERSONAL.value), None)
    if personal is None:
        click.echo("Error: Server did not return a personal group.", err=True)
        sys.exit(1)

    config = load_config()
    config["server_url"] = server_config.server_url
    config["auth_token"] = token
    config["user_id"] = personal.admin
    save_config(config)

    click.echo("Logged in successfully!")
    click.echo(f"Server: {server_config.server_url}")
    click.echo(f"User: {personal.admin}")
    click.echo(f"Groups: {len(groups)}")


@click.command()
def logout() -> None:
    """Forget the stored server identity.

    Local records are kept.
    """
    config = load_config()
    for key in ("server_url", "auth_token", "user_id"):
        config.pop(key, None)
    save_config(config)
    click.echo("Logged out.")
