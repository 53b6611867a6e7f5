"""Last-write-wins conflict resolution.

Strategy:
1. If one side is missing, the other side wins
2. If both exist, the strictly newer ``lastModified`` wins
3. Equal timestamps mean "already consistent": nothing is written

Rule 3 assumes equal timestamps imply equal content. That is not checked
here; two devices writing different content within the same timestamp
resolution keep their own copies until one of them writes again.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum, auto
from typing import Protocol


class Versioned(Protocol):
    """Anything with an id and a modification timestamp."""

    @property
    def key(self) -> str: ...

    @property
    def modified_at(self) -> datetime: ...


class Winner(Enum):
    """Which copy of a record is authoritative."""

    LOCAL = auto()  # Local copy should be written remotely
    REMOTE = auto()  # Remote copy should be written locally
    NONE = auto()  # Both sides agree, no write


def resolve(local: Versioned | None, remote: Versioned | None) -> Winner:
    """Pick the authoritative copy of a record.

    Args:
        local: Local copy, or None if absent.
        remote: Remote copy, or None if absent.

    Returns:
        The winning side.

    Raises:
        ValueError: If both sides are absent.
    """
    if local is None and remote is None:
        raise ValueError("Cannot resolve a record absent on both sides")
    if remote is None:
        return Winner.LOCAL
    if local is None:
        return Winner.REMOTE

    local_time = local.modified_at
    remote_time = remote.modified_at
    if local_time > remote_time:
        return Winner.LOCAL
    if remote_time > local_time:
        return Winner.REMOTE
    return Winner.NONE
