"""Protocol definition for value serializers."""

from __future__ import annotations

from typing import Any, Protocol


class Serializer(Protocol):
    """Turns values into bytes and back."""

    def serialize(self, value: Any) -> bytes:
        """Encode value; raises TypeError if it cannot be encoded."""
        ...

    def deserialize(self, data: bytes) -> Any:
        """Decode bytes.

        Invariants:
            - Raises DeserializeError if the bytes are malformed or name
              a type the serializer does not know
        """
        ...
