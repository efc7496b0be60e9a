"""Common type definitions for kvtables.

Defines fundamental types used across all components.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

# Core primitive types
Key = bytes
Value = bytes
SeqNo = int
Marker = int  # absolute expiry instant, milliseconds since the epoch

# Store operations: (op_code, key, value_or_none). For a range delete the
# "key" is the inclusive low bound and the "value" is the exclusive high bound
# (None = unbounded).
Operation = tuple[int, Key, Value | None]
Record = tuple[Key, Value]

Predicate = Callable[[str, Any], bool]
