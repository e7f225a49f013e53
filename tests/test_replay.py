import pytest

from telfs.database import ROOT_INO, Database
from telfs.dirents import DirentMixin
from telfs.inodes import InodeMixin
from telfs.journal import JournalMixin
from telfs.replay import ReplayMixin
from telfs.types import (
    OP_CREATE_CHILD,
    OP_RENAME,
    OP_SET_SIZE,
    OP_UNLINK,
    Inode,
    JournalOp,
    Kind,
    MetaError,
    NotFoundError,
    decode_op,
)
from telfs.xattrs import XattrMixin


class _Store(ReplayMixin, DirentMixin, InodeMixin, JournalMixin, XattrMixin, Database):
    pass


@pytest.fixture
def source(tmp_path):
    s = _Store(tmp_path / "source.sqlite")
    yield s
    s.close()


@pytest.fixture
def target(tmp_path):
    s = _Store(tmp_path / "target.sqlite")
    yield s
    s.close()


def _replay_all(src, dst):
    for entry in src.pending_journal():
        dst.replay_op(decode_op(entry.op_json))


def _tree(store, parent=ROOT_INO):
    return [
        (info.name, info.ino, info.kind, info.mode, info.size, _tree(store, info.ino))
        if info.kind == Kind.DIR
        else (info.name, info.ino, info.kind, info.mode, info.size)
        for info in store.readdir_info(parent)
    ]


def test_replay_reproduces_tree(source, target):
    d = source.create_child(ROOT_INO, "d", Inode(kind=Kind.DIR, mode=0o40755))
    f = source.create_child(d, "f", Inode(kind=Kind.FILE, mode=0o100644))
    source.create_child(
        ROOT_INO, "l", Inode(kind=Kind.SYMLINK, mode=0o120777, symlink_target="d/f")
    )
    source.link(ROOT_INO, "hard", f)
    source.rename(d, "f", ROOT_INO, "moved")
    source.set_size(f, 4096)
    source.create_child(ROOT_INO, "gone", Inode(kind=Kind.FILE, mode=0o100600))
    source.unlink(ROOT_INO, "gone")

    _replay_all(source, target)

    assert _tree(target) == _tree(source)
    assert target.get_inode(f).nlink == 2
    assert target.get_inode(f).size == 4096
    assert target.lookup(ROOT_INO, "l").symlink_target == "d/f"


def test_replay_create_keeps_attributes(target):
    op = JournalOp(
        op=OP_CREATE_CHILD,
        parent=ROOT_INO,
        name="x",
        kind=Kind.FILE,
        mode=0o100640,
        uid=1000,
        gid=1000,
        mtime=1234567890,
    )
    target.replay_op(op)
    got = target.lookup(ROOT_INO, "x")
    assert got.kind == Kind.FILE
    assert got.mode == 0o100640
    assert got.uid == 1000 and got.gid == 1000
    assert got.mtime == 1234567890
    assert got.ctime == 1234567890
    assert got.nlink == 1


def test_replay_create_existing_name_tolerated(target):
    op = JournalOp(op=OP_CREATE_CHILD, parent=ROOT_INO, name="x", kind=Kind.FILE, mode=0o100644)
    target.replay_op(op)
    target.replay_op(op)
    assert [e.name for e in target.readdir(ROOT_INO)] == ["x"]


def test_replay_create_without_kind_raises(target):
    with pytest.raises(MetaError):
        target.replay_op(JournalOp(op=OP_CREATE_CHILD, parent=ROOT_INO, name="x"))


def test_replay_unlink_missing_tolerated(target):
    target.replay_op(JournalOp(op=OP_UNLINK, parent=ROOT_INO, name="ghost"))
    assert target.readdir(ROOT_INO) == []


def test_replay_rename_missing_source_and_destination_raises(target):
    op = JournalOp(
        op=OP_RENAME, parent=ROOT_INO, name="ghost", new_parent=ROOT_INO, new_name="other"
    )
    with pytest.raises(NotFoundError):
        target.replay_op(op)


def test_replay_rename_already_applied_tolerated(target):
    ino = target.create_child(ROOT_INO, "b", Inode(kind=Kind.FILE, mode=0o100644))
    op = JournalOp(op=OP_RENAME, parent=ROOT_INO, name="a", new_parent=ROOT_INO, new_name="b")
    target.replay_op(op)
    assert target.lookup(ROOT_INO, "b").ino == ino


def test_replay_set_size_missing_inode_raises(target):
    with pytest.raises(NotFoundError):
        target.replay_op(JournalOp(op=OP_SET_SIZE, ino=4242, size=10))


def test_replay_unknown_op_raises(target):
    with pytest.raises(MetaError, match="unknown journal op kind"):
        target.replay_op(JournalOp(op="bogus"))