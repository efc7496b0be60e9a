"""Embedded ordered store implementation.

Orchestrates the memtable, the WAL and snapshots behind a transactional
interface.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from sortedcontainers import SortedDict

from ..core.errors import RecoveryError, StoreClosedError, StoreError
from .memtable import SimpleMemtable
from .snapshot import read_snapshot, write_snapshot
from .wal import OP_DELETE, OP_DELETE_RANGE, OP_PUT, SimpleWAL

if TYPE_CHECKING:
    from ..core.config import StoreConfig
    from ..core.types import Key, Operation, SeqNo, Value

logger = logging.getLogger(__name__)

WAL_NAME = "wal-current.wal"
SNAPSHOT_NAME = "snapshot.dat"


def _check_bytes(name: str, data) -> None:
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"{name} must be bytes, got {type(data).__name__}")


def apply_ops(memtable: SimpleMemtable, ops: list[Operation]) -> None:
    """Apply one transaction's operations to a memtable, in order."""
    for code, key, value in ops:
        if code == OP_PUT:
            memtable.put(key, value)
        elif code == OP_DELETE:
            memtable.delete(key)
        elif code == OP_DELETE_RANGE:
            memtable.delete_range(key, value)
        else:
            raise ValueError(f"Unknown op code: {code}")


class StoreTransaction:
    """A serializable transaction over SimpleOrderedStore.

    Writes are buffered and become visible to other transactions only on
    commit. The store lock is held from creation until commit or rollback.

    Invariants:
        - Reads observe the transaction's own buffered writes
        - A buffered write shadows any earlier range delete covering its key
        - Commit logs all operations as one WAL frame before touching the memtable
    """

    def __init__(self, store: SimpleOrderedStore):
        self._store = store
        self._writes: SortedDict = SortedDict()  # key -> value, None = delete
        self._ranges: list[tuple[Key, Key | None]] = []
        self._open = True

    def _check_open(self) -> None:
        if not self._open:
            raise StoreError("Transaction already finished")

    def _range_deleted(self, key: Key) -> bool:
        for low, high in self._ranges:
            if low <= key and (high is None or key < high):
                return True
        return False

    def get(self, key: Key) -> Value | None:
        self._check_open()
        if key in self._writes:
            return self._writes[key]
        if self._range_deleted(key):
            return None
        return self._store._memtable.get(key)

    def put(self, key: Key, value: Value) -> None:
        self._check_open()
        _check_bytes("key", key)
        _check_bytes("value", value)
        self._writes[bytes(key)] = bytes(value)

    def delete(self, key: Key) -> None:
        self._check_open()
        _check_bytes("key", key)
        self._writes[bytes(key)] = None

    def range_scan(self, low: Key, high: Key | None) -> list[tuple[Key, Value]]:
        self._check_open()
        merged: dict[Key, Value] = {}
        for key, value in self._store._memtable.iter_range(low, high):
            if not self._range_deleted(key):
                merged[key] = value
        for key in self._writes.irange(low, high, inclusive=(True, False)):
            value = self._writes[key]
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        return sorted(merged.items())

    def delete_range(self, low: Key, high: Key | None) -> None:
        self._check_open()
        for key in list(self._writes.irange(low, high, inclusive=(True, False))):
            del self._writes[key]
        self._ranges.append((bytes(low), bytes(high) if high is not None else None))

    def _operations(self) -> list[Operation]:
        # Range deletes first: any buffered write still inside a range was
        # made after that range delete.
        ops: list[Operation] = [(OP_DELETE_RANGE, low, high) for low, high in self._ranges]
        for key, value in self._writes.items():
            if value is None:
                ops.append((OP_DELETE, key, None))
            else:
                ops.append((OP_PUT, key, value))
        return ops

    def commit(self) -> None:
        self._check_open()
        try:
            ops = self._operations()
            if ops:
                self._store._commit(ops)
        finally:
            self._finish()

    def rollback(self) -> None:
        if not self._open:
            return
        logger.debug(f"Rolled back transaction with {len(self._writes)} buffered writes")
        self._finish()

    def _finish(self) -> None:
        self._open = False
        self._writes = SortedDict()
        self._ranges = []
        self._store._lock.release()


class SimpleOrderedStore:
    """Ordered, transactional byte key-value store with crash recovery.

    Args:
        config: Store configuration; `data_dir=None` keeps state in memory only

    Public API:
        - begin(): Start a transaction
        - transaction(): Transaction context manager
        - checkpoint(): Snapshot state and truncate the WAL
        - close(): Release resources

    Invariants:
        - Every committed transaction is logged as one WAL frame before it
          is applied to the memtable
        - Transactions run one at a time under a store-wide lock
        - Sequence numbers increase with each non-empty commit
    """

    def __init__(self, config: StoreConfig):
        self.config = config
        self._lock = threading.RLock()
        self._memtable = SimpleMemtable()
        self._seq: SeqNo = 0
        self._closed = False
        self._wal: SimpleWAL | None = None
        self.data_dir = Path(config.data_dir) if config.data_dir is not None else None

        if self.data_dir is not None:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            self._snapshot_path = self.data_dir / SNAPSHOT_NAME
            self._wal = SimpleWAL(
                self.data_dir / WAL_NAME,
                flush_every_write=config.wal_flush_every_write,
            )
            self._recover()
            logger.info(f"Initialized store at {self.data_dir}")
        else:
            logger.info("Initialized in-memory store")

    def _recover(self) -> None:
        """Recover state from the snapshot and the WAL."""
        logger.info("Starting recovery from snapshot and WAL...")

        try:
            seq, records = read_snapshot(self._snapshot_path)
            for key, value in records:
                self._memtable.put(key, value)
            self._seq = seq

            count = 0
            for frame_seq, ops in self._wal:
                # Frames left behind by a checkpoint interrupted before the
                # WAL was truncated are already in the snapshot.
                if frame_seq <= seq:
                    continue
                apply_ops(self._memtable, ops)
                self._seq = max(self._seq, frame_seq)
                count += 1
            self._wal.discard_partial_tail()

            logger.info(f"Recovered {len(self._memtable)} keys, replayed {count} WAL frames")
        except Exception as e:
            self._wal.close()
            raise RecoveryError(f"Failed to recover store: {e}") from e

    def begin(self) -> StoreTransaction:
        """Start a transaction, blocking until the store lock is free."""
        if self._closed:
            raise StoreClosedError("Store is closed")
        self._lock.acquire()
        if self._closed:
            self._lock.release()
            raise StoreClosedError("Store is closed")
        return StoreTransaction(self)

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """Run a block in one transaction; commit on success, roll back on error."""
        tx = self.begin()
        try:
            yield tx
        except BaseException:
            tx.rollback()
            raise
        tx.commit()

    def _commit(self, ops: list[Operation]) -> None:
        """Log and apply a transaction (caller holds the lock)."""
        seq = self._seq + 1
        if self._wal is not None:
            try:
                self._wal.append(seq, ops)
            except OSError as e:
                raise StoreError(f"Failed to commit transaction: {e}") from e

        apply_ops(self._memtable, ops)
        self._seq = seq
        logger.debug(f"Committed seq={seq} with {len(ops)} operations")

        if self._wal is not None and self._wal.size_bytes() > self.config.wal_checkpoint_bytes:
            try:
                self._checkpoint_locked()
            except StoreError as e:
                # The commit is already durable in the WAL; retry on the next one.
                logger.error(f"Automatic checkpoint failed: {e}")

    def checkpoint(self) -> int:
        """Write a snapshot of the current state and truncate the WAL.

        Returns:
            Number of records in the snapshot
        """
        with self._lock:
            if self._closed:
                raise StoreClosedError("Store is closed")
            return self._checkpoint_locked()

    def _checkpoint_locked(self) -> int:
        if self._wal is None:
            return len(self._memtable)

        logger.info(f"Checkpointing {len(self._memtable)} keys at seq={self._seq}")
        try:
            count = write_snapshot(
                self._snapshot_path,
                self._memtable.items(),
                self._seq,
                frame_records=self.config.snapshot_frame_records,
            )
            self._wal.reset()
        except OSError as e:
            raise StoreError(f"Checkpoint failed: {e}") from e
        return count

    @property
    def sequence(self) -> SeqNo:
        """Sequence number of the last committed transaction."""
        return self._seq

    def __len__(self) -> int:
        return len(self._memtable)

    def close(self) -> None:
        """Close store and release resources."""
        with self._lock:
            if self._closed:
                return
            logger.info("Closing store")
            self._closed = True
            if self._wal is not None:
                self._wal.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
