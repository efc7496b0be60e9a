"""Snapshot file for checkpoints.

A snapshot holds every live record of the store at some sequence number,
packed with the WAL frame codec. It is replaced atomically via
write-temp-then-rename, so readers only ever see a complete snapshot.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from .wal import OP_PUT, encode_frame, iter_frames

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ..core.types import Key, Record, SeqNo, Value

logger = logging.getLogger(__name__)


def write_snapshot(path: str | Path, records: Iterable[Record], seq: SeqNo, frame_records: int = 1024) -> int:
    """Atomically write `records` as the snapshot at `path`.

    Args:
        path: Destination snapshot file
        records: (key, value) records in any order
        seq: Sequence number of the last transaction the snapshot covers
        frame_records: Maximum records per frame

    Returns:
        Number of records written
    """
    path = Path(path)
    temp_path = path.with_suffix(".tmp")
    count = 0

    with open(temp_path, "wb") as f:
        batch = []
        # Always emit at least one frame so the sequence number survives
        # an empty store.
        for key, value in records:
            batch.append((OP_PUT, key, value))
            if len(batch) >= frame_records:
                f.write(encode_frame(seq, batch))
                count += len(batch)
                batch = []
        if batch or count == 0:
            f.write(encode_frame(seq, batch))
            count += len(batch)
        f.flush()
        os.fsync(f.fileno())

    # Atomic rename
    os.replace(temp_path, path)
    logger.debug(f"Saved snapshot with {count} records to {path}")
    return count


def read_snapshot(path: str | Path) -> tuple[SeqNo, Iterator[tuple[Key, Value]]]:
    """Return (seq, records) for the snapshot at `path`.

    A missing snapshot reads as empty at sequence 0. Snapshots are never
    appended to, so any truncation is reported as corruption.
    """
    path = Path(path)
    if not path.exists():
        logger.info(f"No existing snapshot at {path}, starting fresh")
        return 0, iter(())

    frames = list(iter_frames(path, strict=True))
    seq = max((frame_seq for frame_seq, _ops in frames), default=0)

    def records() -> Iterator[tuple[Key, Value]]:
        for _frame_seq, ops in frames:
            for _code, key, value in ops:
                yield key, value

    logger.info(f"Loaded snapshot from {path} at seq={seq}")
    return seq, records()
