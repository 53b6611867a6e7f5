"""Sync engine coordinating record synchronization.

This module provides:
- SyncEngine: Push then pull, partition by partition, between the local
  store and the remote store
- run_lock: Per-user lock serializing overlapping sync runs

Each run is a full comparison of both snapshots of every partition; no
cursor or change log is kept between runs. Within a partition every
collection is pushed before any collection is pulled, and the pull phase
always re-reads the remote snapshot so writes that landed during the push
(from this run or from another device) are seen.

Records are merged whole. Concurrent edits to different fields of the
same record are not combined: the copy with the newer ``lastModified``
replaces the other entirely.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections import defaultdict
from dataclasses import replace
from typing import TYPE_CHECKING

from finsync.client.api import (
    APIError,
    AuthenticationError,
)
from finsync.client.state import LocalStoreError, PartitionMismatchError
from finsync.client.sync.conflict import Winner, resolve
from finsync.client.sync.reconcile import needs_reconciliation, reconcile
from finsync.client.sync.types import (
    PartitionResult,
    SyncAbortedError,
    SyncResult,
)
from finsync.core.records import parse_timestamp
from finsync.core.types import RecordKind

if TYPE_CHECKING:
    from finsync.client.api import RemoteStore
    from finsync.client.state import LocalStore
    from finsync.core.records import Record

logger = logging.getLogger(__name__)

_run_locks: dict[str, threading.Lock] = {}
_run_locks_guard = threading.Lock()


def run_lock(user_id: str) -> threading.Lock:
    """Get the lock guarding sync runs for a user."""
    with _run_locks_guard:
        lock = _run_locks.get(user_id)
        if lock is None:
            lock = _run_locks[user_id] = threading.Lock()
        return lock


def choose_active_partition(partitions: list[str], preferred: str | None) -> str | None:
    """Pick the partition to show, keeping ``preferred`` while it is accessible.

    Falls back to the first accessible partition, or None if there is none.
    """
    if preferred is not None and preferred in partitions:
        return preferred
    return partitions[0] if partitions else None


def _group_by_key(records: list[Record]) -> dict[str, list[Record]]:
    """Group local records by string id, canonical (string) ids first."""
    grouped: dict[str, list[Record]] = defaultdict(list)
    for record in records:
        grouped[record.key].append(record)
    for candidates in grouped.values():
        candidates.sort(key=lambda r: r.has_legacy_id)
    return grouped


def _resolve_or_skip(
    kind: RecordKind, key: str, local: Record | None, remote: Record | None
) -> Winner | None:
    """Resolve a conflict, or return None if a timestamp cannot be parsed.

    A record with an unreadable ``lastModified`` on either side is left
    alone on both sides, even when the other side has no copy.
    """
    try:
        for record in (local, remote):
            if record is not None:
                parse_timestamp(record.last_modified)
        return resolve(local, remote)
    except ValueError as e:
        logger.warning("Skipped %s %s with an unreadable timestamp: %s", kind.value, key, e)
        return None


class SyncEngine:
    """Coordinates record synchronization between local and remote stores."""

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStore,
        user_id: str,
    ) -> None:
        """Initialize the sync engine.

        Args:
            local: Local record store.
            remote: Remote record store.
            user_id: Authenticated user; runs for the same user serialize.
        """
        self._local = local
        self._remote = remote
        self._user_id = user_id

    def sync(self, active_partition: str | None = None) -> SyncResult:
        """Run a full sync and report the outcome.

        Never raises for connectivity, permission or local storage errors;
        they are reported on the returned result.

        Args:
            active_partition: Last active partition, re-validated against
                the partitions resolved for this run.

        Returns:
            SyncResult with per-partition counters and errors.
        """
        try:
            result = self.run(active_partition)
        except SyncAbortedError as e:
            logger.error("Sync aborted: %s", e)
            return e.result
        logger.info(
            "Sync finished: %d partition(s), %d write(s), %d error(s)",
            len(result.partitions),
            result.writes,
            len(result.errors),
        )
        return result

    def run(self, active_partition: str | None = None) -> SyncResult:
        """Run a full sync, push then pull per partition.

        Blocks while another run for the same user is in progress.

        Raises:
            SyncAbortedError: If partitions cannot be resolved, the token is
                rejected, or the local store fails.
        """
        lock = run_lock(self._user_id)
        if not lock.acquire(blocking=False):
            logger.info("Sync already running for %s, waiting for it to finish", self._user_id)
            lock.acquire()
        try:
            return self._run(active_partition)
        finally:
            lock.release()

    def _run(self, active_partition: str | None) -> SyncResult:
        result = SyncResult()

        try:
            partitions = self._remote.list_partitions()
        except APIError as e:
            result.error = f"Could not resolve partitions: {e}"
            raise SyncAbortedError(result.error, result) from e
        logger.debug("Resolved %d partition(s): %s", len(partitions), partitions)
        result.active_partition = choose_active_partition(partitions, active_partition)

        for partition in partitions:
            partition_result = PartitionResult(partition=partition)
            result.partitions.append(partition_result)
            try:
                self.sync_partition(partition, partition_result)
            except AuthenticationError as e:
                partition_result.error = str(e)
                result.error = f"Authentication failed: {e}"
                raise SyncAbortedError(result.error, result) from e
            except APIError as e:
                # Writes already applied to this or earlier partitions stay
                partition_result.error = str(e)
                logger.warning("Sync of group %s failed: %s", partition, e)
            except (LocalStoreError, sqlite3.Error) as e:
                partition_result.error = str(e)
                result.error = f"Local store error: {e}"
                raise SyncAbortedError(result.error, result) from e

        if result.success:
            self._local.set_last_sync_at()
        return result

    def sync_partition(self, partition: str, result: PartitionResult) -> None:
        """Push then pull every collection of one partition."""
        for kind in RecordKind:
            self.push(partition, kind, result)
        for kind in RecordKind:
            self.pull(partition, kind, result)

    def push(self, partition: str, kind: RecordKind, result: PartitionResult) -> None:
        """Send local records that are newer than (or missing from) the remote."""
        counters = result.for_kind(kind)
        remote_by_key = {r.key: r for r in self._remote.list_records(partition, kind)}
        local_by_key = _group_by_key(self._local.list_by_partition(kind, partition))
        logger.debug(
            "Push %s/%s: %d local, %d remote", partition, kind.value, len(local_by_key), len(remote_by_key)
        )

        defaulted: list[Record] = []
        for key, candidates in local_by_key.items():
            filled = [c.with_defaults() for c in candidates]
            defaulted.extend(f for c, f in zip(candidates, filled) if c.needs_defaults)
            local = filled[0]
            remote = remote_by_key.get(key)

            winner = _resolve_or_skip(kind, key, local, remote)
            if winner is None:
                counters.skipped += 1
                continue
            if winner is Winner.LOCAL:
                # The server keys records by string id
                self._remote.upsert_record(partition, kind, replace(local, id=key))
                counters.pushed += 1
                logger.debug("Pushed %s %s", kind.value, key)
            elif winner is Winner.NONE and remote is not None and not local.same_content(remote):
                logger.debug(
                    "%s %s has equal timestamps but different content on each side",
                    kind.value,
                    key,
                )

        # Persist filled defaults only after the remote writes went through
        for record in defaulted:
            self._local.put(kind, record)

    def pull(self, partition: str, kind: RecordKind, result: PartitionResult) -> None:
        """Apply remote records that are newer than (or missing from) the local store."""
        counters = result.for_kind(kind)
        remote_records = self._remote.list_records(partition, kind)
        local_by_key = _group_by_key(self._local.list_by_partition(kind, partition))
        logger.debug(
            "Pull %s/%s: %d local, %d remote", partition, kind.value, len(local_by_key), len(remote_records)
        )

        for remote in remote_records:
            candidates = local_by_key.get(remote.key, [])
            local = candidates[0] if candidates else None
            legacy = [r for r in candidates if needs_reconciliation(r, remote.key)]

            winner = _resolve_or_skip(kind, remote.key, local.with_defaults() if local else None, remote)
            if winner is None:
                counters.skipped += 1
                continue
            if winner is Winner.LOCAL:
                continue
            if winner is Winner.NONE and not legacy:
                continue

            try:
                if legacy:
                    for alias in legacy:
                        if reconcile(self._local, kind, alias, remote):
                            counters.reconciled += 1
                else:
                    self._local.put(kind, remote)
            except PartitionMismatchError as e:
                counters.skipped += 1
                logger.warning("Kept local copy, skipped remote record: %s", e)
                continue
            counters.pulled += 1
            logger.debug("Pulled %s %s", kind.value, remote.key)
