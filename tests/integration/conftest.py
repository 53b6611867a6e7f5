"""Pytest fixtures for integration tests.

This module provides fixtures for end-to-end testing with the real FastAPI
app served in-process: every device talks to it through a ``TestClient``,
which is an ``httpx.Client``, wrapped in a regular ``RemoteStore``.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from finsync.client.api import RemoteStore
from finsync.client.state import LocalStore
from finsync.client.sync import SyncEngine, SyncResult
from finsync.core.config import ServerConfig
from finsync.server.app import create_app
from finsync.server.database import Database


@dataclass
class Device:
    """Container for a simulated client device."""

    name: str
    user_id: str
    local: LocalStore
    remote: RemoteStore
    results: list[SyncResult] = field(default_factory=list)

    def sync(self) -> SyncResult:
        """Run one sync and remember the active partition like the CLI does."""
        engine = SyncEngine(self.local, self.remote, self.user_id)
        result = engine.sync(self.local.get_last_partition())
        if result.active_partition is not None:
            self.local.set_last_partition(result.active_partition)
        self.results.append(result)
        return result


@pytest.fixture
def server_db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create the server database."""
    db = Database(tmp_path / "server.db")
    yield db
    db.close()


@pytest.fixture
def app(server_db: Database) -> FastAPI:
    """Create the server app."""
    return create_app(server_db)


@pytest.fixture
def make_device(
    tmp_path: Path, server_db: Database, app: FastAPI
) -> Generator[Callable[[str, str], Device], None, None]:
    """Factory creating a device logged in as a user (created on first use)."""
    devices: list[Device] = []

    def _make(name: str, user_id: str) -> Device:
        if server_db.get_user(user_id) is None:
            server_db.create_user(user_id, f"{user_id}@example.com", user_id.capitalize())
        raw_token, _ = server_db.create_token(user_id)
        config = ServerConfig(server_url="http://testserver", token=raw_token)
        device = Device(
            name=name,
            user_id=user_id,
            local=LocalStore(tmp_path / f"{name}.db"),
            remote=RemoteStore(config, http_client=TestClient(app)),
        )
        devices.append(device)
        return device

    yield _make

    for device in devices:
        device.remote.close()
        device.local.close()
