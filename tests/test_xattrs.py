import pytest

from telfs.database import Database
from telfs.inodes import InodeMixin
from telfs.journal import JournalMixin
from telfs.types import Inode, Kind, NotFoundError
from telfs.xattrs import XattrMixin


class _Store(XattrMixin, JournalMixin, InodeMixin, Database):
    pass


@pytest.fixture
def store(tmp_path):
    s = _Store(tmp_path / "telfs.sqlite")
    yield s
    s.close()


@pytest.fixture
def ino(store):
    return store.create_inode(Inode(kind=Kind.FILE, mode=0o100644))


def test_round_trip(store, ino):
    store.set_xattr(ino, "user.tag", b"hello")
    assert store.get_xattr(ino, "user.tag") == b"hello"

    store.set_xattr(ino, "user.tag", b"world")
    assert store.get_xattr(ino, "user.tag") == b"world"

    store.set_xattr(ino, "user.other", b"x")
    assert store.list_xattrs(ino) == ["user.other", "user.tag"]

    store.remove_xattr(ino, "user.tag")
    with pytest.raises(NotFoundError):
        store.get_xattr(ino, "user.tag")


def test_empty_value(store, ino):
    store.set_xattr(ino, "user.empty", b"")
    assert store.get_xattr(ino, "user.empty") == b""


def test_remove_missing_raises(store, ino):
    with pytest.raises(NotFoundError):
        store.remove_xattr(ino, "user.ghost")


def test_list_empty(store, ino):
    assert store.list_xattrs(ino) == []


def test_cascade_on_inode_delete(store, ino):
    store.set_xattr(ino, "user.tag", b"v")
    store.connection().execute("DELETE FROM inodes WHERE ino = ?", (ino,))
    with pytest.raises(NotFoundError):
        store.get_xattr(ino, "user.tag")
    assert store.list_xattrs(ino) == []