"""Configuration for kvtables.

Defines all tunable parameters for the store and the table layer.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class StoreConfig:
    """Configuration parameters for a kvtables database.

    Attributes:
        data_dir: Root directory for WAL and snapshot; None keeps everything in memory
        wal_flush_every_write: Whether to fsync after each committed transaction
        wal_checkpoint_bytes: WAL size that triggers an automatic checkpoint
        snapshot_frame_records: Number of records packed per snapshot frame
        default_key_length: Length of generated keys when a handle sets none
        max_insert_attempts: Collision retry budget for generated keys
        purge_expired_on_read: Delete expired entries discovered by reads
        clock: Wall clock returning seconds since the epoch
    """

    data_dir: str | None = None
    wal_flush_every_write: bool = True
    wal_checkpoint_bytes: int = 64 * 1024 * 1024  # 64 MB
    snapshot_frame_records: int = 1024
    default_key_length: int = 16
    max_insert_attempts: int = 10
    purge_expired_on_read: bool = True
    clock: Callable[[], float] = time.time

    def __post_init__(self):
        if self.default_key_length < 1:
            raise ValueError("default_key_length must be at least 1")
        if self.max_insert_attempts < 1:
            raise ValueError("max_insert_attempts must be at least 1")
        if self.snapshot_frame_records < 1:
            raise ValueError("snapshot_frame_records must be at least 1")
