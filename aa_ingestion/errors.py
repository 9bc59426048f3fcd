"""Pipeline error taxonomy.

Transport-level failures live in :mod:`integrations.finfactor.errors`; the
classes here cover everything downstream of the HTTP call.
"""
from __future__ import annotations

from typing import Optional

__all__ = [
    "IngestionError",
    "NoLinkedAccount",
    "MappingError",
    "PersistenceError",
    "RunStateError",
    "BatchStartError",
]


class IngestionError(Exception):
    """Base class for pipeline errors."""


class NoLinkedAccount(IngestionError):
    """No FIP in the linked-accounts tree has any account.

    A legitimate empty state: dependent steps are skipped, never retried.
    """

    def __init__(self, asset_type: Optional[str] = None):
        self.asset_type = asset_type
        super().__init__(f"no linked account found{f' for {asset_type}' if asset_type else ''}")


class MappingError(IngestionError):
    """The payload's structure is unusable (not a field-level coercion miss)."""


class PersistenceError(IngestionError):
    """A write failed; carries the table and record key it concerned."""

    def __init__(self, table: str, key: Optional[str], message: str):
        self.table = table
        self.key = key
        super().__init__(f"{table}[{key}]: {message}")


class RunStateError(IngestionError):
    """Illegal FetchRun transition (only Pending may be finalized)."""


class BatchStartError(IngestionError):
    """The batch could not start at all."""
