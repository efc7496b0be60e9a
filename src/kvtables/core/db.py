"""Database - main public API.

Opens the ordered store and hands out table handles. The root table is the
handle with the empty name; the passthrough methods below operate on it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..components import expiry, scan
from ..components.engine import SimpleOrderedStore
from ..components.keygen import KeyGenerator
from ..components.serializer import default_serializer
from .config import StoreConfig
from .table import Table

if TYPE_CHECKING:
    from ..interfaces.serializer import Serializer
    from ..interfaces.store import OrderedStore
    from .types import Predicate

logger = logging.getLogger(__name__)


class Database:
    """Table-namespaced key-value database with per-handle TTLs.

    Args:
        config: Store configuration (defaults to an in-memory store)
        serializer: Value serializer (defaults to the shared registry serializer)
        keygen: Generator for insert() keys

    Public API:
        - table(name): Handle on a logical table
        - get/set/get_str/set_str/delete/has_key/keys/insert/cut/filter: root table passthroughs
        - purge_expired(): Reclaim expired entries across all tables
        - checkpoint(): Purge, then compact the store's log into a snapshot
        - close(): Release resources
    """

    def __init__(
        self,
        config: StoreConfig | None = None,
        serializer: Serializer | None = None,
        keygen: KeyGenerator | None = None,
    ):
        self.config = config if config is not None else StoreConfig()
        self.serializer = serializer if serializer is not None else default_serializer
        self.keygen = keygen if keygen is not None else KeyGenerator()
        self.store: OrderedStore = SimpleOrderedStore(self.config)
        self.root = Table(self)

    def table(self, name: str = "") -> Table:
        """Return a handle on table `name` (no TTL, default key length)."""
        return Table(self, name)

    # --- root table passthroughs ---

    def get(self, key: str, expected_type: type | None = None) -> Any:
        return self.root.get(key, expected_type)

    def set(self, key: str, value: Any) -> None:
        self.root.set(key, value)

    def get_str(self, key: str) -> str:
        return self.root.get_str(key)

    def set_str(self, key: str, value: str) -> None:
        self.root.set_str(key, value)

    def delete(self, key: str) -> None:
        self.root.delete(key)

    def has_key(self, key: str) -> bool:
        return self.root.has_key(key)

    def keys(self, prefix: str = "") -> list[str]:
        return self.root.keys(prefix)

    def insert(self, value: Any) -> str:
        return self.root.insert(value)

    def cut(self, key: str, expected_type: type | None = None) -> Any:
        return self.root.cut(key, expected_type)

    def filter(self, predicate: Predicate, expected_type: type | None = None) -> list[str]:
        return self.root.filter(predicate, expected_type)

    # --- maintenance ---

    def purge_expired(self) -> int:
        """Delete expired entries in every table. Returns how many were removed."""
        with self.store.transaction() as tx:
            count = scan.purge_expired(tx, expiry.now_ms(self.config.clock()))
        if count:
            logger.info(f"Purged {count} expired entries")
        return count

    def checkpoint(self) -> int:
        """Purge expired entries and snapshot the store.

        Returns:
            Number of records in the snapshot
        """
        self.purge_expired()
        return self.store.checkpoint()

    def close(self) -> None:
        """Close the database and its store."""
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def open_database(data_dir: str | None = None, **options: Any) -> Database:
    """Open a database at data_dir (in memory when None).

    Extra keyword arguments are StoreConfig fields.
    """
    return Database(StoreConfig(data_dir=data_dir, **options))
