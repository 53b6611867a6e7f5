"""Shared types for finsync.

This module defines enums used by both client and server.
"""

from __future__ import annotations

from enum import Enum


class RecordKind(str, Enum):
    """Collection a record belongs to.

    The value doubles as the local table name and the remote
    collection segment (``{partition}/{kind}/{id}``).
    """

    TRANSACTIONS = "transactions"
    CATEGORIES = "categories"


class GroupType(str, Enum):
    """Type of a group (partition)."""

    PERSONAL = "personal"
    SHARED = "shared"


class TransactionType(str, Enum):
    """Direction of a transaction."""

    INCOME = "income"
    EXPENSE = "expense"
