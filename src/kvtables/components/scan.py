"""Scan/filter engine over a bounded range of the physical keyspace.

All functions run inside a caller-supplied transaction and recompute
liveness for every entry they visit.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterator

from ..core.errors import DeserializeError
from . import codec, expiry

if TYPE_CHECKING:
    from ..core.types import Key, Marker, Predicate
    from ..interfaces.serializer import Serializer
    from ..interfaces.store import Transaction

logger = logging.getLogger(__name__)


def read_live(tx: Transaction, physical: Key, now: Marker, purge: bool) -> bytes | None:
    """Return the payload stored at physical if it is live, else None.

    An expired entry is deleted in the same transaction when `purge` is set.
    """
    raw = tx.get(physical)
    if raw is None:
        return None
    marker, payload = expiry.unpack(raw)
    if expiry.is_expired(marker, now):
        if purge:
            tx.delete(physical)
            logger.debug(f"Purged expired entry on read (marker={marker}, now={now})")
        return None
    return payload


def live_entries(
    tx: Transaction, low: Key, high: Key | None, now: Marker, purge: bool
) -> Iterator[tuple[Key, bytes]]:
    """Yield (physical_key, payload) for live entries in [low, high)."""
    purged = 0
    for physical, raw in tx.range_scan(low, high):
        marker, payload = expiry.unpack(raw)
        if expiry.is_expired(marker, now):
            if purge:
                tx.delete(physical)
                purged += 1
            continue
        yield physical, payload
    if purged:
        logger.debug(f"Purged {purged} expired entries during scan")


def scan_keys(
    tx: Transaction, table: str, key_prefix: str, now: Marker, purge: bool
) -> list[str]:
    """Return live logical keys of table starting with key_prefix, in order."""
    low, high = codec.key_bounds(table, key_prefix)
    return [
        codec.decode_logical(table, physical)
        for physical, _payload in live_entries(tx, low, high, now, purge)
    ]


def scan_filter(
    tx: Transaction,
    table: str,
    predicate: Predicate,
    serializer: Serializer,
    now: Marker,
    purge: bool,
    expected_type: type | None = None,
) -> list[str]:
    """Return live logical keys of table whose value satisfies predicate.

    Predicates may run transactions of their own on the same thread, so
    expired entries are purged only after the last predicate returns, and
    only those that are still expired at that point.

    Deserialization failures and predicate exceptions propagate and abort
    the scan.
    """
    low, high = codec.table_bounds(table)
    matches = []
    for physical, payload in live_entries(tx, low, high, now, purge=False):
        key = codec.decode_logical(table, physical)
        value = decode_value(serializer, payload, expected_type, key)
        if predicate(key, value):
            matches.append(key)
    if purge:
        purged = purge_expired(tx, now, low, high)
        if purged:
            logger.debug(f"Purged {purged} expired entries after filter")
    return matches


def decode_value(serializer: Serializer, payload: bytes, expected_type: type | None, key: str) -> Any:
    """Deserialize payload and check it against the caller's type hint."""
    try:
        value = serializer.deserialize(payload)
    except DeserializeError as e:
        raise DeserializeError(f"Value at key {key!r}: {e}") from e
    if expected_type is not None and not isinstance(value, expected_type):
        raise DeserializeError(
            f"Value at key {key!r} is {type(value).__name__}, expected {expected_type.__name__}"
        )
    return value


def purge_expired(tx: Transaction, now: Marker, low: Key = b"", high: Key | None = None) -> int:
    """Delete every expired entry in [low, high), by default the whole keyspace.

    Returns:
        Number of entries deleted
    """
    count = 0
    for physical, raw in tx.range_scan(low, high):
        marker, _payload = expiry.unpack(raw)
        if expiry.is_expired(marker, now):
            tx.delete(physical)
            count += 1
    return count
