"""Repair of records stored under a legacy id representation.

Categories created by the old auto-increment schema were stored locally
under integer ids, while the server keys every record by its string id.
Once the server copy comes back, the local store would hold ``5`` and
``"5"`` side by side for one logical record. The reconciler drops the
legacy row before the canonical one is written.

Only an exact representational match triggers it (``str(local.id) ==
canonical_id``); records are never matched on content.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from finsync.client.state import PartitionMismatchError

if TYPE_CHECKING:
    from finsync.client.state import LocalStore
    from finsync.core.records import Record
    from finsync.core.types import RecordKind

logger = logging.getLogger(__name__)


def needs_reconciliation(local: Record, canonical_id: str) -> bool:
    """Check whether a local record is a legacy-typed alias of ``canonical_id``."""
    return local.id != canonical_id and str(local.id) == canonical_id


def reconcile(
    store: LocalStore,
    kind: RecordKind,
    local: Record,
    canonical: Record,
) -> bool:
    """Replace a legacy-keyed local record with its canonical version.

    The legacy row is removed first, then the canonical record is written.
    If the removal fails the canonical record is still written, leaving
    both rows in place, and a warning is logged.

    Args:
        store: Local store to repair.
        kind: Collection of the record.
        local: Local record under the legacy id.
        canonical: Record under the canonical string id.

    Returns:
        True if the legacy row was removed.

    Raises:
        PartitionMismatchError: If the canonical id is already stored under
            another partition. The legacy row is left untouched.
    """
    if not needs_reconciliation(local, canonical.key):
        store.put(kind, canonical)
        return False

    clash = store.find(kind, canonical.id)
    if clash is not None and clash.group_id != canonical.group_id:
        raise PartitionMismatchError(kind, canonical.id, clash.group_id, canonical.group_id)

    removed = False
    try:
        removed = store.delete_key(kind, local.id)
    except sqlite3.Error as e:
        logger.warning(
            "Could not remove legacy %s row %r, keeping both copies: %s",
            kind.value,
            local.id,
            e,
        )
    else:
        if not removed:
            logger.warning(
                "Legacy %s row %r vanished before reconciliation", kind.value, local.id
            )

    store.put(kind, canonical)
    if removed:
        logger.info(
            "Reconciled %s id %r -> %r", kind.value, local.id, canonical.key
        )
    return removed
