import pytest

from telfs.database import DEFAULT_CHUNK_SIZE, ROOT_INO
from telfs.store import Store
from telfs.types import Chunk, Inode, Kind, MetaError, NotFoundError


@pytest.fixture
def store(tmp_path):
    s = Store(tmp_path / "telfs.sqlite")
    yield s
    s.close()


def test_open_creates_root(store):
    root = store.get_inode(ROOT_INO)
    assert root.ino == ROOT_INO
    assert root.kind == Kind.DIR
    assert root.mode & 0o777 == 0o755


def test_open_idempotent(tmp_path):
    path = tmp_path / "telfs.sqlite"
    s1 = Store(path)
    ino = s1.create_child(ROOT_INO, "stable.txt", Inode(kind=Kind.FILE, mode=0o100644))
    uuid_before = s1.fs_uuid()
    s1.close()

    with Store(path) as s2:
        assert s2.get_inode(ino).kind == Kind.FILE
        assert s2.fs_uuid() == uuid_before
        assert s2.lookup(ROOT_INO, "stable.txt").ino == ino


def test_open_creates_parent_directories(tmp_path):
    path = tmp_path / "nested" / "dir" / "telfs.sqlite"
    with Store(path) as s:
        assert s.get_inode(ROOT_INO).kind == Kind.DIR
    assert path.exists()


def test_fresh_store_defaults(store):
    assert store.chunk_size() == DEFAULT_CHUNK_SIZE
    assert len(store.fs_uuid()) == 36
    assert store.trash_enabled() is False


def test_closed_store_rejects_use(tmp_path):
    s = Store(tmp_path / "telfs.sqlite")
    s.close()
    s.close()
    with pytest.raises(MetaError):
        s.get_inode(ROOT_INO)


def test_operations_work_together(store):
    d = store.create_child(ROOT_INO, "d", Inode(kind=Kind.DIR, mode=0o40755))
    f = store.create_child(d, "f", Inode(kind=Kind.FILE, mode=0o100644))
    store.put_chunk(Chunk(ino=f, idx=0, tg_message_id=11, size=100))
    store.set_xattr(f, "user.tag", b"v")
    store.set_size(f, 100)

    assert store.get_inode(f).size == 100
    ops = [e.op_json for e in store.pending_journal()]
    assert len(ops) == 3

    store.unlink(d, "f")
    with pytest.raises(NotFoundError):
        store.get_xattr(f, "user.tag")
    assert store.list_chunks(f) == []


def test_failed_transaction_rolls_back(store):
    store.create_child(ROOT_INO, "a", Inode(kind=Kind.FILE, mode=0o100644))
    before = len(store.pending_journal())
    with pytest.raises(MetaError):
        store.create_child(ROOT_INO, "a", Inode(kind=Kind.FILE, mode=0o100644))
    assert len(store.pending_journal()) == before
    assert [e.name for e in store.readdir(ROOT_INO)] == ["a"]