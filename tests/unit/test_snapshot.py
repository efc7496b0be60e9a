"""Unit tests for checkpoint snapshots."""

import os
import shutil
import tempfile
from pathlib import Path

import pytest

from kvtables.components.snapshot import read_snapshot, write_snapshot
from kvtables.core.errors import WALCorruptionError


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def snapshot_path(temp_dir):
    return Path(temp_dir) / "snapshot.dat"


def test_snapshot_roundtrip_across_frames(snapshot_path):
    """Test records split over several frames read back in order."""
    records = [(f"key{i}".encode(), f"value{i}".encode()) for i in range(5)]

    assert write_snapshot(snapshot_path, records, seq=9, frame_records=2) == 5

    seq, loaded = read_snapshot(snapshot_path)
    assert seq == 9
    assert list(loaded) == records


def test_empty_snapshot_keeps_sequence(snapshot_path):
    """Test an empty store still records its sequence number."""
    assert write_snapshot(snapshot_path, [], seq=42) == 0

    seq, loaded = read_snapshot(snapshot_path)
    assert seq == 42
    assert list(loaded) == []


def test_missing_snapshot_is_empty(snapshot_path):
    """Test a fresh directory reads as sequence 0."""
    seq, loaded = read_snapshot(snapshot_path)
    assert seq == 0
    assert list(loaded) == []


def test_snapshot_replace_is_atomic(snapshot_path, temp_dir):
    """Test rewriting replaces the old snapshot and leaves no temp file."""
    write_snapshot(snapshot_path, [(b"a", b"1")], seq=1)
    write_snapshot(snapshot_path, [(b"b", b"2")], seq=2)

    seq, loaded = read_snapshot(snapshot_path)
    assert (seq, list(loaded)) == (2, [(b"b", b"2")])
    assert os.listdir(temp_dir) == ["snapshot.dat"]


def test_truncated_snapshot_is_corruption(snapshot_path):
    """Test that a snapshot is never read partially."""
    write_snapshot(snapshot_path, [(b"a", b"1")], seq=1)
    with open(snapshot_path, "r+b") as f:
        f.truncate(os.path.getsize(snapshot_path) - 2)

    with pytest.raises(WALCorruptionError):
        read_snapshot(snapshot_path)
