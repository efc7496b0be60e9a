"""Table handle - the table-scoped public API.

A handle binds a table name plus optional TTL and generated-key length to a
database. Handles are immutable: `with_ttl` and `with_key_length` return
new handles and leave the receiver untouched, so differently configured
handles over the same table can be shared freely between threads.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from ..components import codec, expiry, scan
from .errors import DeserializeError, NotFoundError

if TYPE_CHECKING:
    from .db import Database
    from .types import Marker, Predicate


def _check_key(key: str) -> None:
    if not isinstance(key, str):
        raise TypeError(f"Key must be a string, got {type(key).__name__}")


@dataclass(frozen=True)
class Table:
    """Handle on one logical table of a Database.

    Every operation runs as exactly one store transaction.

    Attributes:
        db: Owning database
        name: Table name; "" is the root table
        ttl: Seconds until entries written through this handle expire, or None
        key_length: Length of keys generated by insert(), or None for the default
    """

    db: Database = field(repr=False, compare=False)
    name: str = ""
    ttl: float | None = None
    key_length: int | None = None

    def __post_init__(self):
        if not isinstance(self.name, str):
            raise TypeError(f"Table name must be a string, got {type(self.name).__name__}")

    # --- configuration ---

    def with_ttl(self, duration: timedelta | float | None) -> Table:
        """Return a handle whose writes expire after duration (timedelta or seconds)."""
        return replace(self, ttl=expiry.ttl_seconds(duration))

    def with_key_length(self, length: int) -> Table:
        """Return a handle whose insert() generates keys of exactly length symbols."""
        if not isinstance(length, int) or isinstance(length, bool) or length < 1:
            raise ValueError(f"Key length must be a positive integer, got {length!r}")
        return replace(self, key_length=length)

    # --- helpers ---

    def _now(self) -> Marker:
        return expiry.now_ms(self.db.config.clock())

    @property
    def _purge(self) -> bool:
        return self.db.config.purge_expired_on_read

    def _envelope(self, payload: bytes, now: Marker) -> bytes:
        return expiry.pack(expiry.stamp(self.ttl, now), payload)

    def _read(self, key: str) -> bytes:
        _check_key(key)
        with self.db.store.transaction() as tx:
            payload = scan.read_live(tx, codec.encode_key(self.name, key), self._now(), self._purge)
        if payload is None:
            raise NotFoundError(key, self.name)
        return payload

    def _write(self, key: str, payload: bytes) -> None:
        with self.db.store.transaction() as tx:
            tx.put(codec.encode_key(self.name, key), self._envelope(payload, self._now()))

    # --- values ---

    def get(self, key: str, expected_type: type | None = None) -> Any:
        """Return the value stored at key.

        Raises:
            NotFoundError: if key is absent or expired
            DeserializeError: if the value doesn't decode, or isn't an expected_type
        """
        payload = self._read(key)
        return scan.decode_value(self.db.serializer, payload, expected_type, key)

    def set(self, key: str, value: Any) -> None:
        """Store value at key, replacing any previous value and expiry."""
        _check_key(key)
        self._write(key, self.db.serializer.serialize(value))

    def get_str(self, key: str) -> str:
        """Return the raw string stored at key by set_str()."""
        payload = self._read(key)
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DeserializeError(f"Value at key {key!r} is not a UTF-8 string") from e

    def set_str(self, key: str, value: str) -> None:
        """Store a raw string at key."""
        _check_key(key)
        if not isinstance(value, str):
            raise TypeError(f"Value must be a string, got {type(value).__name__}")
        self._write(key, value.encode("utf-8"))

    def has_key(self, key: str) -> bool:
        """Return True if key holds a live entry."""
        _check_key(key)
        with self.db.store.transaction() as tx:
            payload = scan.read_live(tx, codec.encode_key(self.name, key), self._now(), self._purge)
        return payload is not None

    def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""
        _check_key(key)
        with self.db.store.transaction() as tx:
            tx.delete(codec.encode_key(self.name, key))

    def cut(self, key: str, expected_type: type | None = None) -> Any:
        """Atomically read, decode and delete the value at key.

        If decoding fails the entry is left in place.
        """
        _check_key(key)
        physical = codec.encode_key(self.name, key)
        value = None
        with self.db.store.transaction() as tx:
            payload = scan.read_live(tx, physical, self._now(), self._purge)
            if payload is not None:
                value = scan.decode_value(self.db.serializer, payload, expected_type, key)
                tx.delete(physical)
        if payload is None:
            raise NotFoundError(key, self.name)
        return value

    def insert(self, value: Any) -> str:
        """Store value under a freshly generated key and return the key.

        Raises:
            KeyspaceExhausted: if every candidate key collided with a live entry
        """
        payload = self.db.serializer.serialize(value)
        length = self.key_length or self.db.config.default_key_length
        with self.db.store.transaction() as tx:
            now = self._now()

            def is_taken(candidate: str) -> bool:
                physical = codec.encode_key(self.name, candidate)
                return scan.read_live(tx, physical, now, self._purge) is not None

            key = self.db.keygen.unique(length, is_taken, self.db.config.max_insert_attempts)
            tx.put(codec.encode_key(self.name, key), self._envelope(payload, now))
        return key

    # --- scans ---

    def keys(self, prefix: str = "") -> list[str]:
        """Return live keys starting with prefix, in lexicographic order."""
        _check_key(prefix)
        with self.db.store.transaction() as tx:
            return scan.scan_keys(tx, self.name, prefix, self._now(), self._purge)

    def filter(self, predicate: Predicate, expected_type: type | None = None) -> list[str]:
        """Return keys of live entries for which predicate(key, value) is true.

        The predicate runs while the store lock is held. It may read or write
        through other handles on the same thread; such writes are committed
        on their own and are never undone by this scan's purge of expired
        entries. Any exception from decoding or from the predicate aborts the
        scan and propagates.
        """
        with self.db.store.transaction() as tx:
            return scan.scan_filter(
                tx, self.name, predicate, self.db.serializer,
                self._now(), self._purge, expected_type,
            )

    def drop(self) -> None:
        """Remove every entry of this table in one range delete."""
        low, high = codec.table_bounds(self.name)
        with self.db.store.transaction() as tx:
            tx.delete_range(low, high)
