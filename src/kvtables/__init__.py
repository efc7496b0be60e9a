"""kvtables - table namespacing and TTL expiry over an ordered key-value store."""

from .core.config import StoreConfig
from .core.db import Database, open_database
from .core.errors import (
    KVTablesError,
    NotFoundError,
    DeserializeError,
    KeyspaceExhausted,
    StoreError,
    WALCorruptionError,
    RecoveryError,
    StoreClosedError,
)
from .core.table import Table
from .components.keygen import KeyGenerator
from .components.serializer import PickleSerializer, register

__all__ = [
    "StoreConfig",
    "Database",
    "open_database",
    "Table",
    "KeyGenerator",
    "PickleSerializer",
    "register",
    "KVTablesError",
    "NotFoundError",
    "DeserializeError",
    "KeyspaceExhausted",
    "StoreError",
    "WALCorruptionError",
    "RecoveryError",
    "StoreClosedError",
]
