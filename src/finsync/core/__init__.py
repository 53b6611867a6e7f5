"""Core module - Shared record model, config, and types."""

from finsync.core.config import ServerConfig
from finsync.core.records import (
    DEFAULT_CATEGORY_COLOR,
    RESERVED_FIELDS,
    Record,
    new_record_id,
    next_timestamp,
    now_iso,
    parse_timestamp,
    utc_now,
)
from finsync.core.types import GroupType, RecordKind, TransactionType

__all__ = [
    # Config
    "ServerConfig",
    # Records
    "DEFAULT_CATEGORY_COLOR",
    "RESERVED_FIELDS",
    "Record",
    "new_record_id",
    "next_timestamp",
    "now_iso",
    "parse_timestamp",
    "utc_now",
    # Types
    "GroupType",
    "RecordKind",
    "TransactionType",
]
