"""Expiry index: absolute expiry markers carried alongside each value.

Stored values are wrapped in an envelope::

    [flag (1B)] [marker (8B, big-endian ms), only if flag == FLAG_EXPIRES] [payload]

Liveness is decided on every read from the marker and the current clock;
nothing caches an "alive" verdict.
"""

from __future__ import annotations

import struct
from datetime import timedelta

from ..core.errors import StoreError
from ..core.types import Marker, Value

FLAG_PERSISTENT = 0x00
FLAG_EXPIRES = 0x01

_MARKER = struct.Struct('>Q')


def now_ms(clock_seconds: float) -> Marker:
    """Convert a clock reading in seconds to the nearest integer millisecond."""
    return round(clock_seconds * 1000)


def ttl_seconds(ttl: timedelta | float | int | None) -> float | None:
    """Normalize a TTL to positive seconds, or None for "never expires"."""
    if ttl is None:
        return None
    if isinstance(ttl, timedelta):
        seconds = ttl.total_seconds()
    elif isinstance(ttl, (int, float)) and not isinstance(ttl, bool):
        seconds = float(ttl)
    else:
        raise TypeError(f"TTL must be a timedelta or number of seconds, got {type(ttl).__name__}")
    if seconds < 0:
        raise ValueError("TTL must not be negative")
    return seconds or None


def stamp(ttl: float | None, now: Marker) -> Marker | None:
    """Return the marker for a write at `now` with `ttl` seconds, or None."""
    if not ttl or ttl <= 0:
        return None
    return now + max(1, round(ttl * 1000))


def is_expired(marker: Marker | None, now: Marker) -> bool:
    """An entry is expired once its marker is at or before now."""
    return marker is not None and marker <= now


def pack(marker: Marker | None, payload: bytes) -> Value:
    """Wrap payload with its expiry marker."""
    if marker is None:
        return bytes((FLAG_PERSISTENT,)) + payload
    return bytes((FLAG_EXPIRES,)) + _MARKER.pack(marker) + payload


def unpack(raw: Value) -> tuple[Marker | None, bytes]:
    """Split a stored value into (marker, payload)."""
    if not raw:
        raise StoreError("Stored value is missing its envelope")
    flag = raw[0]
    if flag == FLAG_PERSISTENT:
        return None, raw[1:]
    if flag == FLAG_EXPIRES:
        if len(raw) < 1 + _MARKER.size:
            raise StoreError("Stored value has a truncated expiry marker")
        return _MARKER.unpack_from(raw, 1)[0], raw[1 + _MARKER.size:]
    raise StoreError(f"Unknown envelope flag: {flag:#x}")
