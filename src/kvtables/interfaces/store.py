"""Protocol definitions for the underlying ordered store."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Protocol, runtime_checkable

from ..core.types import Key, Value


@runtime_checkable
class Transaction(Protocol):
    """Atomic read-write unit of work against an ordered store."""

    def get(self, key: Key) -> Value | None:
        """Return the value for key, or None if absent.

        Sees the transaction's own uncommitted writes.
        """
        ...

    def put(self, key: Key, value: Value) -> None:
        """Buffer an upsert of key."""
        ...

    def delete(self, key: Key) -> None:
        """Buffer a delete of key (idempotent)."""
        ...

    def range_scan(self, low: Key, high: Key | None) -> list[tuple[Key, Value]]:
        """Return (key, value) pairs with low <= key < high in byte order.

        A high bound of None means no upper bound.
        """
        ...

    def delete_range(self, low: Key, high: Key | None) -> None:
        """Buffer removal of every key with low <= key < high."""
        ...

    def commit(self) -> None:
        """Make all buffered writes durable and visible at once."""
        ...

    def rollback(self) -> None:
        """Discard all buffered writes."""
        ...


@runtime_checkable
class OrderedStore(Protocol):
    """Ordered, transactional, persistent byte key-value store.

    Invariants:
        - Transactions are atomic and serializable
        - Range scans follow lexicographic byte order of keys
        - A committed transaction survives a crash; an uncommitted one leaves no trace
    """

    def begin(self) -> Transaction:
        """Start a transaction."""
        ...

    def transaction(self) -> AbstractContextManager[Transaction]:
        """Context manager committing on success and rolling back on error."""
        ...

    def checkpoint(self) -> int:
        """Persist the full state compactly and discard the replay log."""
        ...

    def close(self) -> None:
        """Close store and release resources."""
        ...
