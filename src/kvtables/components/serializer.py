"""Pickle-based value serializer with an explicit type registry.

Built-in containers and scalars need no registration. Any other class must
be registered before values of it can be read back; the unpickler refuses
every global that is neither registered nor in a small set of stdlib value
types, which also keeps arbitrary callables out of the load path.

Example:
    >>> @register
    ... @dataclass
    ... class Signup:
    ...     name: str
    ...     email: str
"""

from __future__ import annotations

import io
import pickle
import threading
from typing import Any

from ..core.errors import DeserializeError

SAFE_GLOBALS = frozenset({
    ("builtins", "bytearray"),
    ("builtins", "complex"),
    ("builtins", "frozenset"),
    ("builtins", "range"),
    ("builtins", "set"),
    ("builtins", "slice"),
    ("collections", "OrderedDict"),
    ("collections", "deque"),
    ("datetime", "date"),
    ("datetime", "datetime"),
    ("datetime", "time"),
    ("datetime", "timedelta"),
    ("datetime", "timezone"),
    ("decimal", "Decimal"),
    ("uuid", "SafeUUID"),
    ("uuid", "UUID"),
})


class _RegistryUnpickler(pickle.Unpickler):
    def __init__(self, data: bytes, allowed: frozenset[tuple[str, str]]):
        super().__init__(io.BytesIO(data))
        self._allowed = allowed

    def find_class(self, module: str, name: str) -> Any:
        if (module, name) in self._allowed or (module, name) in SAFE_GLOBALS:
            return super().find_class(module, name)
        raise pickle.UnpicklingError(f"type {module}.{name} is not registered")


class PickleSerializer:
    """Serializes values with pickle; deserializes only registered types.

    Thread-safe: registration swaps an immutable snapshot of the registry.
    """

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL):
        self.protocol = protocol
        self._registered: frozenset[tuple[str, str]] = frozenset()
        self._lock = threading.Lock()

    def register(self, cls: type) -> type:
        """Allow values of cls to be deserialized. Usable as a decorator."""
        if not isinstance(cls, type):
            raise TypeError(f"register() expects a class, got {cls!r}")
        with self._lock:
            self._registered = self._registered | {(cls.__module__, cls.__qualname__)}
        return cls

    def is_registered(self, cls: type) -> bool:
        return (cls.__module__, cls.__qualname__) in self._registered

    def serialize(self, value: Any) -> bytes:
        try:
            return pickle.dumps(value, protocol=self.protocol)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise TypeError(f"Cannot serialize {type(value).__name__}: {e}") from e

    def deserialize(self, data: bytes) -> Any:
        try:
            return _RegistryUnpickler(data, self._registered).load()
        except Exception as e:
            raise DeserializeError(f"Cannot deserialize value: {e}") from e


default_serializer = PickleSerializer()


def register(cls: type) -> type:
    """Register cls with the default serializer."""
    return default_serializer.register(cls)
