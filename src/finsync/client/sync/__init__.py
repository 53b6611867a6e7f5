"""Record synchronization between the local store and the server.

Architecture:
    SyncEngine → (push, pull) per partition → resolve() → reconcile()

Components:
- **SyncEngine**: Resolves partitions, pushes then pulls each one
- **resolve**: Last-write-wins decision for one record
- **reconcile**: Replaces legacy integer-keyed rows with canonical ones
"""

from finsync.client.sync.conflict import Versioned, Winner, resolve
from finsync.client.sync.engine import SyncEngine, choose_active_partition, run_lock
from finsync.client.sync.reconcile import needs_reconciliation, reconcile
from finsync.client.sync.types import (
    KindResult,
    PartitionResult,
    SyncAbortedError,
    SyncError,
    SyncResult,
)

__all__ = [
    # Engine
    "SyncEngine",
    "choose_active_partition",
    "run_lock",
    # Conflict resolution
    "Versioned",
    "Winner",
    "resolve",
    # ID reconciliation
    "needs_reconciliation",
    "reconcile",
    # Types
    "KindResult",
    "PartitionResult",
    "SyncAbortedError",
    "SyncError",
    "SyncResult",
]
