"""Write-Ahead Log implementation.

Provides durable, crash-safe append-only log with CRC32 checksums. Each
frame holds every operation of one committed transaction, so replay either
applies a whole transaction or none of it.
"""

from __future__ import annotations

import logging
import os
import struct
import zlib
from pathlib import Path
from typing import BinaryIO, Iterator

from ..core.errors import WALCorruptionError
from ..core.types import Operation, SeqNo

logger = logging.getLogger(__name__)

# Frame format:
# [magic (4B)] [seq (8B)] [op_count (4B)]
#   op_count x ([op (1B)] [key_len (8B)] [key bytes] [value_len (8B)] [value bytes])
# [crc32 (4B)]
MAGIC = 0x4B565401  # "KVT" + version
OP_PUT = 0
OP_DELETE = 1
OP_DELETE_RANGE = 2
OP_DELETE_RANGE_OPEN = 3  # range delete without an upper bound

_HEADER = struct.Struct('<IQI')
_OP_CODE = struct.Struct('<B')
_LENGTH = struct.Struct('<Q')
_CRC = struct.Struct('<I')


def encode_frame(seq: SeqNo, ops: list[Operation]) -> bytes:
    """Serialize a batch of operations into a checksummed frame."""
    parts = [_HEADER.pack(MAGIC, seq, len(ops))]
    for code, key, value in ops:
        if code == OP_DELETE_RANGE and value is None:
            code = OP_DELETE_RANGE_OPEN
        value_bytes = value if value is not None else b''
        parts.append(_OP_CODE.pack(code))
        parts.append(_LENGTH.pack(len(key)))
        parts.append(key)
        parts.append(_LENGTH.pack(len(value_bytes)))
        parts.append(value_bytes)
    payload = b''.join(parts)
    return payload + _CRC.pack(zlib.crc32(payload))


class _Truncated(Exception):
    """Internal signal: the frame ends before its declared length."""


def _read(f: BinaryIO, n: int, what: str, buf: list[bytes]) -> bytes:
    # A length field read from a damaged frame can be arbitrarily large;
    # never ask for more than the file still holds.
    if n > os.fstat(f.fileno()).st_size - f.tell():
        raise _Truncated(what)
    chunk = f.read(n)
    if len(chunk) < n:
        raise _Truncated(what)
    buf.append(chunk)
    return chunk


def _read_frame(f: BinaryIO) -> tuple[SeqNo, list[Operation]] | None:
    """Read one frame. Returns None at a clean EOF."""
    head = f.read(_HEADER.size)
    if len(head) == 0:
        return None
    if len(head) < _HEADER.size:
        raise _Truncated("header")

    magic, seq, count = _HEADER.unpack(head)
    if magic != MAGIC:
        raise WALCorruptionError(f"Invalid magic: {magic:x}")

    buf = [head]
    ops: list[Operation] = []
    for _ in range(count):
        code = _OP_CODE.unpack(_read(f, _OP_CODE.size, "op_code", buf))[0]
        key_len = _LENGTH.unpack(_read(f, _LENGTH.size, "key_len", buf))[0]
        key = _read(f, key_len, "key", buf)
        value_len = _LENGTH.unpack(_read(f, _LENGTH.size, "value_len", buf))[0]
        value = _read(f, value_len, "value", buf)

        if code == OP_PUT:
            ops.append((OP_PUT, key, value))
        elif code == OP_DELETE:
            ops.append((OP_DELETE, key, None))
        elif code == OP_DELETE_RANGE:
            ops.append((OP_DELETE_RANGE, key, value))
        elif code == OP_DELETE_RANGE_OPEN:
            ops.append((OP_DELETE_RANGE, key, None))
        else:
            raise WALCorruptionError(f"Unknown op code: {code}")

    crc_bytes = f.read(_CRC.size)
    if len(crc_bytes) < _CRC.size:
        raise _Truncated("crc")
    stored_crc = _CRC.unpack(crc_bytes)[0]
    computed_crc = zlib.crc32(b''.join(buf))
    if stored_crc != computed_crc:
        raise WALCorruptionError(f"CRC mismatch: expected {computed_crc:x}, got {stored_crc:x}")

    return seq, ops


def iter_frames(path: str | Path, strict: bool = False) -> Iterator[tuple[SeqNo, list[Operation]]]:
    """Iterate (seq, ops) frames of a log file in append order.

    A partial frame at EOF is the trace of a commit interrupted by a crash:
    it is skipped with a warning, unless `strict` is set, in which case it
    raises WALCorruptionError.
    """
    with open(path, 'rb') as f:
        while True:
            try:
                frame = _read_frame(f)
            except _Truncated as e:
                if strict:
                    raise WALCorruptionError(f"Truncated frame ({e}) in {path}") from None
                logger.warning(f"Partial frame at EOF ({e}), skipping")
                return
            if frame is None:
                return
            yield frame


def valid_length(path: str | Path) -> int:
    """Return the byte length of the complete frames at the start of a log."""
    end = 0
    with open(path, 'rb') as f:
        while True:
            try:
                if _read_frame(f) is None:
                    return end
            except _Truncated:
                return end
            end = f.tell()


class SimpleWAL:
    """Append-only Write-Ahead Log of committed transactions.

    Args:
        path: Path to WAL file
        flush_every_write: Whether to fsync after each append

    Invariants:
        - Frames are written whole with checksums
        - A failed append leaves the log exactly as it was before
        - Partial frames at EOF are skipped during replay
        - Frames are returned in append order
    """

    def __init__(self, path: str | Path, flush_every_write: bool = True):
        self.path = Path(path)
        self.flush_every_write = flush_every_write
        self._fd: BinaryIO | None = None
        self._broken = False
        self._open_for_write()

    def _open_for_write(self) -> None:
        """Open WAL file for appending."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Unbuffered: a failed write must not leave bytes behind to be
        # flushed later.
        self._fd = open(self.path, 'ab', buffering=0)
        self._fd.seek(0, os.SEEK_END)
        logger.debug(f"Opened WAL {self.path} at offset {self._fd.tell()}")

    def _write_all(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = self._fd.write(view)
            view = view[written:]

    def append(self, seq: SeqNo, ops: list[Operation]) -> int:
        """Append one transaction's operations as a single frame.

        If writing or syncing the frame fails, the log is truncated back to
        its previous end before the error propagates, so the frame can never
        be replayed.

        Returns:
            Number of bytes written
        """
        if self._fd is None:
            raise RuntimeError("WAL is closed")
        if self._broken:
            raise OSError(f"WAL {self.path} could not be restored after a failed append")

        frame = encode_frame(seq, ops)
        offset = self._fd.tell()
        try:
            self._write_all(frame)
            if self.flush_every_write:
                os.fsync(self._fd.fileno())
        except OSError:
            self._rollback_to(offset)
            raise

        logger.debug(f"Appended frame seq={seq}, ops={len(ops)}, bytes={len(frame)}")
        return len(frame)

    def _rollback_to(self, offset: int) -> None:
        logger.error(f"WAL append failed, truncating {self.path} back to {offset} bytes")
        try:
            self._fd.truncate(offset)
            self._fd.seek(offset)
        except OSError as e:
            self._broken = True
            logger.error(f"Could not truncate {self.path} after a failed append: {e}")
            return
        try:
            os.fsync(self._fd.fileno())
        except OSError as e:
            # A later fsync persists the new length.
            logger.warning(f"Could not sync truncation of {self.path}: {e}")

    def size_bytes(self) -> int:
        """Return the current size of the log."""
        if self._fd is None:
            return self.path.stat().st_size if self.path.exists() else 0
        return self._fd.tell()

    def sync(self) -> None:
        """Force data to disk (fsync)."""
        if self._fd:
            os.fsync(self._fd.fileno())

    def reset(self) -> None:
        """Discard all frames (after their effects were checkpointed)."""
        if self._fd is None:
            raise RuntimeError("WAL is closed")
        self._fd.truncate(0)
        self._fd.seek(0)
        os.fsync(self._fd.fileno())
        self._broken = False
        logger.debug(f"Truncated WAL {self.path}")

    def discard_partial_tail(self) -> int:
        """Cut a partial frame left at EOF by a crash.

        New frames must follow the last complete one, or replay would stop
        at the partial frame and never reach them.

        Returns:
            Number of bytes discarded
        """
        if self._fd is None:
            raise RuntimeError("WAL is closed")
        size = self._fd.tell()
        end = valid_length(self.path)
        if end < size:
            self._fd.truncate(end)
            self._fd.seek(end)
            os.fsync(self._fd.fileno())
            logger.warning(f"Discarded {size - end} bytes of partial frame from {self.path}")
        return size - end

    def close(self) -> None:
        """Close writer and release resources."""
        if self._fd:
            try:
                self.sync()
            finally:
                self._fd.close()
                self._fd = None
            logger.info(f"Closed WAL {self.path}")

    def __iter__(self) -> Iterator[tuple[SeqNo, list[Operation]]]:
        """Iterate frames in the WAL in append order."""
        return iter_frames(self.path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
