import gzip
import os

import pytest

from telfs.database import ROOT_INO
from telfs.snapshot import SnapshotError, restore, take
from telfs.store import Store
from telfs.types import Inode, Kind


def test_round_trip(tmp_path):
    src_path = tmp_path / "src.sqlite"
    src = Store(src_path)
    ino = src.create_child(ROOT_INO, "alpha.txt", Inode(kind=Kind.FILE, mode=0o100644, size=42))
    src.set_xattr(ino, "user.tag", b"hello")
    fs_uuid = src.fs_uuid()

    snap = take(src)
    assert snap.fs_uuid == fs_uuid
    assert len(snap.data) > 0
    assert snap.journal_seq == src.last_journal_seq()
    src.close()

    dst_path = tmp_path / "restored.sqlite"
    restore(snap.data, dst_path)

    with Store(dst_path) as restored:
        got = restored.lookup(ROOT_INO, "alpha.txt")
        assert got.size == 42
        assert restored.get_xattr(got.ino, "user.tag") == b"hello"
        assert restored.fs_uuid() == fs_uuid


def test_snapshot_is_gzip(tmp_path):
    with Store(tmp_path / "db.sqlite") as store:
        snap = take(store)
        assert snap.data[:2] == b"\x1f\x8b"
        assert gzip.decompress(snap.data)[:16] == b"SQLite format 3\x00"
        # The store remains usable after a snapshot.
        ino = store.create_child(ROOT_INO, "after", Inode(kind=Kind.FILE, mode=0o100644))
        assert store.lookup(ROOT_INO, "after").ino == ino


def test_restore_rejects_corrupt_bytes(tmp_path):
    dst = tmp_path / "out.sqlite"
    with pytest.raises(SnapshotError):
        restore(b"not gzipped at all", dst)
    assert not dst.exists()
    assert not os.path.exists(str(dst) + ".restore.tmp")


def test_restore_rejects_non_database_payload(tmp_path):
    dst = tmp_path / "out.sqlite"
    dst.write_bytes(b"keep me")
    with pytest.raises(SnapshotError):
        restore(gzip.compress(b"plain text, not sqlite" * 50), dst)
    assert dst.read_bytes() == b"keep me"
    assert not os.path.exists(str(dst) + ".restore.tmp")


def test_restore_creates_parent_dirs(tmp_path):
    with Store(tmp_path / "db.sqlite") as store:
        snap = take(store)
        fs_uuid = store.fs_uuid()
    dst = tmp_path / "nested" / "deeper" / "db.sqlite"
    restore(snap.data, dst)
    with Store(dst) as restored:
        assert restored.fs_uuid() == fs_uuid
        assert restored.get_inode(ROOT_INO).kind == Kind.DIR