"""Key codec: maps (table, logical key) onto the flat physical keyspace.

Physical key layout::

    uvarint(len(table)) | table | key

with table and key encoded as UTF-8. The LEB128 length prefix is
self-delimiting, so no table prefix is ever a prefix of another table's
(``"abc"`` and ``"abcdef"`` start with different length bytes), and all keys
of one table sort contiguously. The root table has the empty name and the
single-byte prefix ``b"\\x00"``.
"""

from __future__ import annotations

from ..core.types import Key


def _uvarint(n: int) -> bytes:
    """LEB128 unsigned length prefix."""
    if n < 0:
        raise ValueError("length must be non-negative")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(0x80 | b)
        else:
            out.append(b)
            return bytes(out)


def _read_uvarint(data: bytes) -> tuple[int, int]:
    """Return (value, bytes consumed) for the uvarint at the start of data."""
    n = 0
    shift = 0
    for i, b in enumerate(data):
        n |= (b & 0x7F) << shift
        if not b & 0x80:
            return n, i + 1
        shift += 7
    raise ValueError("truncated length prefix")


def prefix_upper_bound(prefix: bytes) -> bytes | None:
    """Return the smallest byte string greater than every key starting with prefix.

    Returns None when no such bound exists (empty or all-0xFF prefix).

    Example: b"ab\\x01" -> b"ab\\x02"; b"a\\xff" -> b"b"; b"\\xff\\xff" -> None
    """
    p = bytearray(prefix)
    for i in range(len(p) - 1, -1, -1):
        if p[i] != 0xFF:
            p[i] += 1
            del p[i + 1:]
            return bytes(p)
    return None


def table_prefix(table: str) -> Key:
    """Return the physical prefix shared by every key of table."""
    name = table.encode("utf-8")
    return _uvarint(len(name)) + name


def encode_key(table: str, key: str) -> Key:
    """Encode (table, key) into a physical key."""
    return table_prefix(table) + key.encode("utf-8")


def decode_key(physical: Key) -> tuple[str, str]:
    """Decode a physical key back into (table, key)."""
    length, offset = _read_uvarint(physical)
    end = offset + length
    if end > len(physical):
        raise ValueError("table name runs past end of key")
    table = physical[offset:end].decode("utf-8")
    key = physical[end:].decode("utf-8")
    return table, key


def decode_logical(table: str, physical: Key) -> str:
    """Strip table's prefix from a physical key known to belong to it."""
    prefix = table_prefix(table)
    if not physical.startswith(prefix):
        raise ValueError(f"key does not belong to table {table!r}")
    return physical[len(prefix):].decode("utf-8")


def table_bounds(table: str) -> tuple[Key, Key | None]:
    """Half-open range [low, high) covering exactly table's entries."""
    low = table_prefix(table)
    return low, prefix_upper_bound(low)


def key_bounds(table: str, key_prefix: str = "") -> tuple[Key, Key | None]:
    """Half-open range covering table's keys that start with key_prefix."""
    low = encode_key(table, key_prefix)
    return low, prefix_upper_bound(low)
