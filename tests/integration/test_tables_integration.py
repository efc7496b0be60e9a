"""Integration tests for kvtables over a file-backed store.

Tests cover:
1. Table namespacing and isolation
2. TTL expiry on the wall clock
3. Typed values, generated keys, cut and filter
4. Durability across restarts
5. Concurrent access
"""

import random
import shutil
import string
import tempfile
import threading
import time
from dataclasses import dataclass
from datetime import timedelta

import pytest

from kvtables import NotFoundError, open_database, register


@register
@dataclass
class Signup:
    name: str
    email: str
    age: int


@register
@dataclass
class UserSession:
    id: str
    email: str


@register
@dataclass
class Item:
    color: str
    name: str


def random_string(n):
    return "".join(random.choices(string.ascii_letters, k=n))


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def db(temp_dir):
    """Create a file-backed database for tests."""
    db = open_database(temp_dir)
    yield db
    db.close()


def test_set_and_overwrite(db):
    """Test a string value can be set, read and replaced."""
    k = random_string(8)
    v = random_string(8)
    db.set_str(k, v)
    assert db.get_str(k) == v

    v2 = random_string(12)
    db.set_str(k, v2)
    assert db.get_str(k) == v2


def test_delete(db):
    """Test deleting one key leaves the others."""
    k, k2 = random_string(8), random_string(9)
    db.set_str(k, "v")
    db.set_str(k2, "v2")

    db.delete(k)

    with pytest.raises(NotFoundError):
        db.get_str(k)
    assert db.get_str(k2) == "v2"


def test_table_get_and_delete(db):
    """Test table-scoped set/get/delete."""
    table = random_string(8)
    k = random_string(8)
    db.table(table).set_str(k, "value")
    assert db.table(table).get_str(k) == "value"

    db.table(table).delete(k)
    with pytest.raises(NotFoundError):
        db.table(table).get_str(k)


def test_table_name_does_not_persist(db):
    """Test writing through a table handle never redirects root writes."""
    k = random_string(8)
    db.table(random_string(8)).set_str(k, "in table")
    k2 = random_string(9)
    db.set_str(k2, "in root")
    db.table("another-table").set_str(k, "elsewhere")

    assert db.get_str(k2) == "in root"
    assert not db.has_key(k)


def test_keys_with_prefix(db):
    """Test prefix listing finds exactly the prefixed keys."""
    for _ in range(15):
        db.set_str(random_string(12), random_string(22))
    for i in range(15):
        db.set_str(f"prefix_{i:02d}{random_string(8)}", random_string(8))

    keys = db.keys("prefix_")
    assert len(keys) == 15
    assert keys == sorted(keys)


def test_drop(db):
    """Test dropping a table removes all its keys."""
    table = random_string(8)
    keys = [f"{random_string(8)}{i}" for i in range(15)]
    for k in keys:
        db.table(table).set_str(k, random_string(8))

    db.table(table).drop()

    for k in keys:
        with pytest.raises(NotFoundError):
            db.table(table).get_str(k)


@pytest.mark.slow
def test_ttl(db):
    """Test TTL entries expire while permanent ones in the same table stay."""
    table = random_string(8)
    pk = random_string(8)
    db.table(table).set_str(pk, "permanent")

    mytable = db.table(table).with_ttl(timedelta(milliseconds=100))
    k = random_string(9)
    mytable.set_str(k, "temporary")

    time.sleep(0.2)

    with pytest.raises(NotFoundError):
        mytable.get_str(k)
    assert mytable.get_str(pk) == "permanent"


def test_setting_struct(db):
    """Test registered dataclass values round trip."""
    su = Signup(random_string(10), "someone@example.com", 42)
    k = random_string(8)
    db.table("signups").set(k, su)

    assert db.table("signups").get(k, Signup) == su


def test_simple_set(db):
    """Test root set/get of a plain value."""
    k, v = random_string(12), random_string(12)
    db.set(k, v)
    assert db.get(k) == v


def test_insert(db):
    """Test insert returns a usable key, honoring the key length."""
    session = UserSession(random_string(12), "user@example.com")

    key = db.table("sessions").insert(session)
    assert db.table("sessions").get(key) == session

    key = db.table("sessions").with_key_length(8).insert(session)
    assert len(key) == 8


@pytest.mark.slow
def test_insert_with_expiry(db):
    """Test inserted entries expire with the handle's TTL."""
    session = UserSession(random_string(12), "user@example.com")
    key = db.table("sessions").with_ttl(timedelta(milliseconds=200)).insert(session)

    time.sleep(0.3)

    with pytest.raises(NotFoundError):
        db.table("sessions").get(key)


def test_get_keys(db):
    """Test every inserted key is listed and readable."""
    table = random_string(12)
    inserted = {db.table(table).insert(UserSession(random_string(12), "a@example.com")) for _ in range(15)}

    keys = db.table(table).keys()
    assert len(keys) == 15
    assert set(keys) == inserted
    for k in keys:
        assert isinstance(db.table(table).get(k), UserSession)


def test_cutting(db):
    """Test cut returns the value and removes it."""
    su = Signup("Grace", "grace@example.com", 37)
    k = random_string(8)
    db.table("signups").set(k, su)

    assert db.table("signups").cut(k) == su
    with pytest.raises(NotFoundError):
        db.table("signups").get(k)


def test_cutting_with_insert(db):
    """Test cut on a generated key."""
    table = random_string(8)
    su = Signup("Alan", "alan@example.com", 41)
    k = db.table(table).insert(su)

    assert db.table(table).cut(k) == su
    with pytest.raises(NotFoundError):
        db.table(table).get(k)


def test_filter_func(db):
    """Test filter finds the single red item."""
    table = random_string(8)
    itm1 = Item("green", random_string(12))
    itm2 = Item("red", random_string(12))
    itm3 = Item("green", random_string(12))
    for itm in (itm1, itm2, itm3):
        db.table(table).insert(itm)

    keys = db.table(table).filter(lambda k, it: it.color == "red")

    assert len(keys) == 1
    assert db.table(table).get(keys[0]) == itm2


def test_data_survives_restart(temp_dir):
    """Test every committed write is visible after reopening."""
    with open_database(temp_dir) as db:
        db.set_str("root", "r")
        db.table("t").set("item", Item("blue", "sky"))
        db.table("t").set_str("gone", "x")
        db.table("t").delete("gone")
        db.table("dropped").set_str("k", "v")
        db.table("dropped").drop()

    with open_database(temp_dir) as db:
        assert db.get_str("root") == "r"
        assert db.table("t").get("item") == Item("blue", "sky")
        assert not db.table("t").has_key("gone")
        assert db.table("dropped").keys() == []


def test_checkpoint_survives_restart(temp_dir):
    """Test state written before and after a checkpoint is recovered."""
    with open_database(temp_dir) as db:
        for i in range(50):
            db.table("t").set_str(f"k{i:02d}", str(i))
        db.checkpoint()
        db.table("t").delete("k00")
        db.table("t").set_str("k50", "50")

    with open_database(temp_dir) as db:
        keys = db.table("t").keys()
        assert len(keys) == 50
        assert keys[0] == "k01"
        assert db.table("t").get_str("k50") == "50"


def test_expiry_marker_survives_restart(temp_dir):
    """Test expiry is absolute, so restarts don't extend an entry's life."""
    now = [1_700_000_000.0]

    def clock():
        return now[0]

    with open_database(temp_dir, clock=clock) as db:
        db.table("t").with_ttl(60).set_str("k", "v")

    now[0] += 61
    with open_database(temp_dir, clock=clock) as db:
        assert not db.table("t").has_key("k")
        assert db.purge_expired() == 0  # already purged by the read above


def test_concurrent_writers(db):
    """Test concurrent writers on separate tables lose no writes."""
    errors = []

    def writer(n):
        try:
            table = db.table(f"w{n}")
            for i in range(50):
                table.set_str(f"k{i:02d}", f"{n}-{i}")
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    for n in range(8):
        assert len(db.table(f"w{n}").keys()) == 50
        assert db.table(f"w{n}").get_str("k49") == f"{n}-49"


def test_concurrent_inserts_get_distinct_keys(db):
    """Test inserts from many threads never overwrite one another."""
    keys = []
    lock = threading.Lock()

    def inserter():
        for _ in range(25):
            k = db.table("shared").with_key_length(2).insert("v")
            with lock:
                keys.append(k)

    threads = [threading.Thread(target=inserter) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(keys) == 100
    assert len(set(keys)) == 100
    assert len(db.table("shared").keys()) == 100
