"""Inode rows: creation, lookup by number and attribute updates."""

from __future__ import annotations

import sqlite3
import time
from typing import Sequence

from telfs.types import Inode, JournalOp, Kind, NotFoundError, OP_SET_SIZE, SetAttrsPatch

_INODE_COLUMNS = "ino, kind, mode, uid, gid, size, nlink, mtime, ctime, symlink_target"


class InodeMixin:
    """Inode operations, mixed into a Database."""

    @staticmethod
    def _row_to_inode(row: Sequence) -> Inode:
        ino, kind, mode, uid, gid, size, nlink, mtime, ctime, target = row
        return Inode(
            ino=ino,
            kind=Kind(kind),
            mode=mode,
            uid=uid,
            gid=gid,
            size=size,
            nlink=nlink,
            mtime=mtime,
            ctime=ctime,
            symlink_target=target or "",
        )

    @staticmethod
    def _insert_inode(conn: sqlite3.Connection, inode: Inode) -> int:
        """Insert inode on conn, filling in default times and nlink."""
        now = int(time.time())
        cursor = conn.execute(
            "INSERT INTO inodes(kind, mode, uid, gid, size, nlink, mtime, ctime, symlink_target)"
            " VALUES (?,?,?,?,?,?,?,?,?)",
            (
                Kind(inode.kind).value,
                inode.mode,
                inode.uid,
                inode.gid,
                inode.size,
                inode.nlink or 1,
                inode.mtime or now,
                inode.ctime or now,
                inode.symlink_target or None,
            ),
        )
        return cursor.lastrowid

    @classmethod
    def _fetch_inode(cls, conn: sqlite3.Connection, ino: int) -> Inode:
        row = conn.execute(
            f"SELECT {_INODE_COLUMNS} FROM inodes WHERE ino = ?", (ino,)
        ).fetchone()
        if row is None:
            raise NotFoundError()
        return cls._row_to_inode(row)

    def create_inode(self, inode: Inode) -> int:
        """Insert a new inode and return its number.

        Zero times default to now and a zero nlink defaults to 1.
        """
        with self._lock:
            return self._insert_inode(self.connection(), inode)

    def get_inode(self, ino: int) -> Inode:
        """The inode with number ino; raises NotFoundError if absent."""
        with self._lock:
            return self._fetch_inode(self.connection(), ino)

    def set_attrs(self, ino: int, patch: SetAttrsPatch) -> None:
        """Apply the non-None fields of patch; ctime always advances."""
        columns = ["ctime = ?"]
        args = [int(time.time())]
        for name in ("mode", "uid", "gid", "size", "mtime"):
            value = getattr(patch, name)
            if value is not None:
                columns.append(f"{name} = ?")
                args.append(value)
        args.append(ino)
        with self._lock:
            cursor = self.connection().execute(
                f"UPDATE inodes SET {', '.join(columns)} WHERE ino = ?", args
            )
        if cursor.rowcount == 0:
            raise NotFoundError()

    def set_size(self, ino: int, size: int) -> None:
        """Set size and mtime together and journal the size change."""
        now = int(time.time())
        self.set_attrs(ino, SetAttrsPatch(size=size, mtime=now))
        with self.transaction() as conn:
            self._append_journal_op(
                conn, JournalOp(op=OP_SET_SIZE, ino=ino, size=size, mtime=now)
            )