"""Exception hierarchy for kvtables.

Defines all custom exceptions used throughout the implementation.
"""

from __future__ import annotations


class KVTablesError(Exception):
    """Base exception for all kvtables errors."""
    pass


class NotFoundError(KVTablesError, KeyError):
    """Raised when a key is absent or its entry has expired.

    Callers cannot tell the two cases apart.
    """

    def __init__(self, key: str, table: str = ""):
        self.key = key
        self.table = table
        super().__init__(key)

    def __str__(self) -> str:
        if self.table:
            return f"key {self.key!r} not found in table {self.table!r}"
        return f"key {self.key!r} not found"


class DeserializeError(KVTablesError):
    """Raised when stored bytes don't decode to the requested type."""
    pass


class KeyspaceExhausted(KVTablesError):
    """Raised when key generation exceeds its collision retry budget."""
    pass


class StoreError(KVTablesError):
    """Raised for failures surfaced by the underlying ordered store."""
    pass


class WALCorruptionError(StoreError):
    """Raised when WAL or snapshot data is corrupted or invalid."""
    pass


class RecoveryError(StoreError):
    """Raised when recovery from persistent state fails."""
    pass


class StoreClosedError(StoreError):
    """Raised when an operation is attempted on a closed store."""
    pass
