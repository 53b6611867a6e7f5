"""Versioned, mergeable record model shared by the local and remote stores.

A record is a flat document with four reserved keys (``id``, ``groupId``,
``lastModified``, ``deleted``) and any number of entity fields. The sync
engine only ever looks at the reserved keys and moves whole records.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Any

RESERVED_FIELDS = ("id", "groupId", "lastModified", "deleted")

# Default color for new categories
DEFAULT_CATEGORY_COLOR = "#0d6efd"


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def now_iso() -> str:
    """Get the current time as an ISO-8601 string."""
    return utc_now().isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp.

    Accepts a trailing ``Z``. Naive timestamps are assumed to be UTC so that
    values written by different clients stay comparable.

    Raises:
        ValueError: If the value is not a valid ISO-8601 timestamp string.
    """
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be an ISO-8601 string, got {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def next_timestamp(previous: str | None = None) -> str:
    """Get a modification timestamp strictly greater than ``previous``.

    Guards against a local clock that went backwards since the last write.
    """
    now = utc_now()
    if previous:
        floor = parse_timestamp(previous) + timedelta(microseconds=1)
        if floor > now:
            now = floor
    return now.isoformat()


def new_record_id() -> str:
    """Generate a canonical record id."""
    return str(uuid.uuid4())


@dataclass
class Record:
    """A transaction or category as seen by the sync engine.

    Attributes:
        id: Record identifier. Canonically a string; integers only appear in
            rows written by the legacy auto-increment schema.
        group_id: Partition the record belongs to.
        last_modified: ISO-8601 timestamp of the last write, or None if the
            record predates timestamp tracking.
        deleted: Tombstone flag, or None if the record predates it.
        fields: Entity-specific fields, opaque to the engine.
    """

    id: str | int
    group_id: str
    last_modified: str | None = None
    deleted: bool | None = False
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], group_id: str | None = None) -> Record:
        """Create from a stored or wire document.

        Args:
            data: Flat camelCase document.
            group_id: Partition to use when the document does not carry one.

        Raises:
            ValueError: If the document has no id or no partition.
        """
        if data.get("id") is None:
            raise ValueError("Record document has no id")
        partition = data.get("groupId") or group_id
        if not partition:
            raise ValueError(f"Record {data['id']!r} has no groupId")
        return cls(
            id=data["id"],
            group_id=partition,
            last_modified=data.get("lastModified"),
            deleted=data.get("deleted"),
            fields={k: v for k, v in data.items() if k not in RESERVED_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a flat camelCase document."""
        data = dict(self.fields)
        data["id"] = self.id
        data["groupId"] = self.group_id
        if self.last_modified is not None:
            data["lastModified"] = self.last_modified
        if self.deleted is not None:
            data["deleted"] = self.deleted
        return data

    @property
    def key(self) -> str:
        """String form of the id, used to match records across stores."""
        return str(self.id)

    @property
    def has_legacy_id(self) -> bool:
        """True if the id is not in canonical string form."""
        return not isinstance(self.id, str)

    @property
    def needs_defaults(self) -> bool:
        """True if ``lastModified`` or ``deleted`` is missing."""
        return self.last_modified is None or self.deleted is None

    @property
    def modified_at(self) -> datetime:
        """Parsed ``lastModified``.

        Raises:
            ValueError: If the record has no timestamp.
        """
        if self.last_modified is None:
            raise ValueError(f"Record {self.key} has no lastModified")
        return parse_timestamp(self.last_modified)

    def with_defaults(self) -> Record:
        """Return a copy with ``lastModified`` and ``deleted`` filled in."""
        if not self.needs_defaults:
            return self
        return replace(
            self,
            last_modified=self.last_modified or now_iso(),
            deleted=bool(self.deleted),
        )

    def same_content(self, other: Record) -> bool:
        """Compare everything except the modification timestamp."""
        return (
            self.key == other.key
            and self.group_id == other.group_id
            and bool(self.deleted) == bool(other.deleted)
            and self.fields == other.fields
        )

    def evolve(self, **changes: Any) -> Record:
        """Return a copy with a fresh timestamp and the given changes.

        Keyword arguments matching dataclass attributes replace them; all
        others are merged into ``fields``.
        """
        attrs = {k: v for k, v in changes.items() if k in ("deleted",)}
        extra = {k: v for k, v in changes.items() if k not in attrs}
        return replace(
            self,
            last_modified=next_timestamp(self.last_modified),
            fields={**self.fields, **extra},
            **attrs,
        )
