"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, SyncAbortedError: Exception classes
- KindResult, PartitionResult: Per-partition counters
- SyncResult: Overall sync run result
"""

from __future__ import annotations

from dataclasses import dataclass, field

from finsync.core.types import RecordKind


class SyncError(Exception):
    """Base exception for sync errors."""


class SyncAbortedError(SyncError):
    """The whole run stopped before every partition was processed.

    Attributes:
        result: What had been done before the abort.
    """

    def __init__(self, message: str, result: SyncResult) -> None:
        super().__init__(message)
        self.result = result


@dataclass
class KindResult:
    """Write counters for one collection of one partition."""

    pushed: int = 0
    pulled: int = 0
    reconciled: int = 0
    skipped: int = 0

    @property
    def writes(self) -> int:
        """Number of writes issued to either store."""
        return self.pushed + self.pulled


@dataclass
class PartitionResult:
    """Result of syncing one partition.

    Attributes:
        partition: Group id.
        kinds: Counters per collection.
        error: Error message if the partition was aborted.
    """

    partition: str
    kinds: dict[RecordKind, KindResult] = field(default_factory=dict)
    error: str | None = None

    def for_kind(self, kind: RecordKind) -> KindResult:
        """Get (creating if needed) the counters of a collection."""
        return self.kinds.setdefault(kind, KindResult())

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def pushed(self) -> int:
        return sum(k.pushed for k in self.kinds.values())

    @property
    def pulled(self) -> int:
        return sum(k.pulled for k in self.kinds.values())

    @property
    def reconciled(self) -> int:
        return sum(k.reconciled for k in self.kinds.values())

    @property
    def skipped(self) -> int:
        return sum(k.skipped for k in self.kinds.values())


@dataclass
class SyncResult:
    """Result of a full sync run."""

    partitions: list[PartitionResult] = field(default_factory=list)
    active_partition: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        """True if the run completed and every partition succeeded."""
        return self.error is None and all(p.success for p in self.partitions)

    @property
    def writes(self) -> int:
        """Total writes issued to either store."""
        return sum(p.pushed + p.pulled for p in self.partitions)

    @property
    def errors(self) -> list[str]:
        errors = [f"{p.partition}: {p.error}" for p in self.partitions if p.error]
        if self.error:
            errors.append(self.error)
        return errors

    def summary(self) -> str:
        """Human-readable one-line status for display."""
        if not self.success:
            return "Sync failed. Please try again."
        pushed = sum(p.pushed for p in self.partitions)
        pulled = sum(p.pulled for p in self.partitions)
        if pushed == pulled == 0:
            return "Sync complete! Everything was already up to date."
        return f"Sync complete! {pushed} record(s) sent, {pulled} record(s) received."
