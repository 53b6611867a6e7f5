"""Configuration utilities for FinSync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from finsync.core.config import ServerConfig


def get_config_dir() -> Path:
    """Get the configuration directory for FinSync.

    Returns:
        Path to ~/.finsync or equivalent.
    """
    return Path.home() / ".finsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_local_db_path() -> Path:
    """Get the path to the local record store."""
    return get_config_dir() / "local.db"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def require_login() -> tuple[ServerConfig, str]:
    """Load the stored server identity or exit with an error.

    Returns:
        Tuple of (ServerConfig, user_id).
    """
    config = load_config()
    if not config.get("server_url") or not config.get("auth_token") or not config.get("user_id"):
        click.echo("Error: Not logged in. Run 'finsync login' first.", err=True)
        sys.exit(1)
    return ServerConfig(server_url=config["server_url"], token=config["auth_token"]), config["user_id"]
