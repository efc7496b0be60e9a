"""In-memory sorted memtable implementation.

Uses sortedcontainers.SortedDict for efficient sorted operations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sortedcontainers import SortedDict

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ..core.types import Key, Record, Value


class SimpleMemtable:
    """In-memory sorted structure holding the committed state of the store.

    There are no lower levels to shadow, so deletes remove the key outright
    instead of leaving a tombstone.

    Invariants:
        - Keys are always maintained in sorted byte order
        - Each key holds the value of the most recent committed write
    """

    def __init__(self):
        """Initialize empty memtable."""
        self._data: SortedDict = SortedDict()

    def put(self, key: Key, value: Value) -> None:
        """Insert or update key with value."""
        self._data[key] = value

    def delete(self, key: Key) -> bool:
        """Remove key. Returns True if it was present."""
        return self._data.pop(key, None) is not None

    def delete_range(self, low: Key, high: Key | None) -> int:
        """Remove every key in [low, high). Returns the number removed."""
        doomed = list(self._data.irange(low, high, inclusive=(True, False)))
        for key in doomed:
            del self._data[key]
        return len(doomed)

    def get(self, key: Key) -> Value | None:
        """Return the value if key found; else None."""
        return self._data.get(key)

    def iter_range(self, start: Key | None, end: Key | None) -> Iterator[Record]:
        """Iterate (key, value) records in key order between start and end.

        Args:
            start: Start key (inclusive), or None for beginning
            end: End key (exclusive), or None for end
        """
        for key in self._data.irange(start, end, inclusive=(True, False)):
            yield (key, self._data[key])

    def items(self) -> Iterable[Record]:
        """Return iterator of all records in sorted key order."""
        return iter(self._data.items())

    def __len__(self) -> int:
        return len(self._data)
