"""Directory entries: name resolution, listing, creation, links and renames."""

from __future__ import annotations

import sqlite3
from typing import List

from telfs.database import ROOT_INO
from telfs.types import (
    OP_CREATE_CHILD,
    OP_LINK,
    OP_RENAME,
    OP_UNLINK,
    CycleError,
    Dirent,
    DirentInfo,
    ExistsError,
    Inode,
    IsDirError,
    JournalOp,
    Kind,
    NotDirError,
    NotEmptyError,
    NotFoundError,
)

_LOOKUP_SQL = (
    "SELECT i.ino, i.kind, i.mode, i.uid, i.gid, i.size, i.nlink, i.mtime, i.ctime,"
    " i.symlink_target"
    " FROM dirents d JOIN inodes i ON i.ino = d.child_ino"
    " WHERE d.parent_ino = ? AND d.name = ?"
)


class DirentMixin:
    """Directory entry operations, mixed into a Database."""

    def _lookup(self, conn: sqlite3.Connection, parent: int, name: str) -> Inode:
        row = conn.execute(_LOOKUP_SQL, (parent, name)).fetchone()
        if row is None:
            raise NotFoundError()
        return self._row_to_inode(row)

    def _require_free(self, conn: sqlite3.Connection, parent: int, name: str) -> None:
        try:
            self._lookup(conn, parent, name)
        except NotFoundError:
            return
        raise ExistsError()

    def _require_dir(self, conn: sqlite3.Connection, ino: int) -> Inode:
        inode = self._fetch_inode(conn, ino)
        if inode.kind != Kind.DIR:
            raise NotDirError()
        return inode

    @staticmethod
    def _child_count(conn: sqlite3.Connection, ino: int) -> int:
        (count,) = conn.execute(
            "SELECT COUNT(*) FROM dirents WHERE parent_ino = ?", (ino,)
        ).fetchone()
        return count

    def lookup(self, parent: int, name: str) -> Inode:
        """Resolve (parent, name) to the child inode; raises NotFoundError."""
        with self._lock:
            return self._lookup(self.connection(), parent, name)

    def readdir(self, parent: int) -> List[Dirent]:
        """The entries of a directory, in no particular order."""
        with self._lock:
            rows = (
                self.connection()
                .execute(
                    "SELECT parent_ino, name, child_ino FROM dirents WHERE parent_ino = ?",
                    (parent,),
                )
                .fetchall()
            )
        return [Dirent(parent_ino=p, name=n, child_ino=c) for p, n, c in rows]

    def readdir_info(self, parent: int) -> List[DirentInfo]:
        """A directory's entries joined with their inode attributes, by name."""
        with self._lock:
            rows = (
                self.connection()
                .execute(
                    "SELECT d.name, i.ino, i.kind, i.mode, i.size"
                    " FROM dirents d JOIN inodes i ON i.ino = d.child_ino"
                    " WHERE d.parent_ino = ? ORDER BY d.name",
                    (parent,),
                )
                .fetchall()
            )
        return [
            DirentInfo(name=name, ino=ino, kind=Kind(kind), mode=mode, size=size)
            for name, ino, kind, mode, size in rows
        ]

    def create_child(self, parent: int, name: str, child: Inode) -> int:
        """Create a new inode under (parent, name) and return its number.

        Raises ExistsError if the name is taken, NotFoundError if the parent
        is missing and NotDirError if it is not a directory.
        """
        with self.transaction() as conn:
            self._require_dir(conn, parent)
            self._require_free(conn, parent, name)
            ino = self._insert_inode(conn, child)
            conn.execute(
                "INSERT INTO dirents(parent_ino, name, child_ino) VALUES (?,?,?)",
                (parent, name, ino),
            )
            self._append_journal_op(
                conn,
                JournalOp(
                    op=OP_CREATE_CHILD,
                    parent=parent,
                    name=name,
                    ino=ino,
                    kind=child.kind,
                    mode=child.mode,
                    uid=child.uid,
                    gid=child.gid,
                    mtime=child.mtime,
                    symlink_target=child.symlink_target,
                ),
            )
        return ino

    def link(self, parent: int, name: str, target: int) -> None:
        """Add a hard link (parent, name) -> target and bump its link count.

        Directories cannot be linked (IsDirError).
        """
        with self.transaction() as conn:
            self._require_dir(conn, parent)
            if self._fetch_inode(conn, target).kind == Kind.DIR:
                raise IsDirError()
            self._require_free(conn, parent, name)
            conn.execute(
                "INSERT INTO dirents(parent_ino, name, child_ino) VALUES (?,?,?)",
                (parent, name, target),
            )
            conn.execute("UPDATE inodes SET nlink = nlink + 1 WHERE ino = ?", (target,))
            self._append_journal_op(
                conn, JournalOp(op=OP_LINK, parent=parent, name=name, target=target)
            )

    def unlink(self, parent: int, name: str) -> None:
        """Remove the entry at (parent, name), deleting the inode at zero links.

        A directory with children raises NotEmptyError.
        """
        with self.transaction() as conn:
            self._unlink_in_tx(conn, parent, name)
            self._append_journal_op(
                conn, JournalOp(op=OP_UNLINK, parent=parent, name=name)
            )

    def _unlink_in_tx(
        self, conn: sqlite3.Connection, parent: int, name: str
    ) -> tuple:
        """Unlink inside the caller's transaction; returns (child ino, deleted)."""
        child = self._lookup(conn, parent, name)
        if child.kind == Kind.DIR and self._child_count(conn, child.ino) > 0:
            raise NotEmptyError()
        conn.execute(
            "DELETE FROM dirents WHERE parent_ino = ? AND name = ?", (parent, name)
        )
        cursor = conn.execute(
            "UPDATE inodes SET nlink = nlink - 1 WHERE ino = ?", (child.ino,)
        )
        if cursor.rowcount == 0:
            raise NotFoundError()
        (nlink,) = conn.execute(
            "SELECT nlink FROM inodes WHERE ino = ?", (child.ino,)
        ).fetchone()
        if nlink == 0:
            conn.execute("DELETE FROM inodes WHERE ino = ?", (child.ino,))
            return child.ino, True
        return child.ino, False

    def rename(
        self, old_parent: int, old_name: str, new_parent: int, new_name: str
    ) -> None:
        """Move an entry, replacing any existing target as rename(2) does.

        Raises IsDirError/NotDirError on kind mismatch, NotEmptyError when the
        target is a non-empty directory and CycleError when a directory would
        move into its own descendant. Renaming onto another link of the same
        inode does nothing.
        """
        if old_parent == new_parent and old_name == new_name:
            return
        with self.transaction() as conn:
            src = self._lookup(conn, old_parent, old_name)
            self._require_dir(conn, new_parent)
            if src.kind == Kind.DIR and self._is_ancestor(conn, src.ino, new_parent):
                raise CycleError()
            try:
                dst = self._lookup(conn, new_parent, new_name)
            except NotFoundError:
                dst = None
            if dst is not None:
                if dst.ino == src.ino:
                    return
                if dst.kind == Kind.DIR:
                    if src.kind != Kind.DIR:
                        raise IsDirError()
                    if self._child_count(conn, dst.ino) > 0:
                        raise NotEmptyError()
                elif src.kind == Kind.DIR:
                    raise NotDirError()
                self._unlink_in_tx(conn, new_parent, new_name)
            conn.execute(
                "UPDATE dirents SET parent_ino = ?, name = ?"
                " WHERE parent_ino = ? AND name = ?",
                (new_parent, new_name, old_parent, old_name),
            )
            self._append_journal_op(
                conn,
                JournalOp(
                    op=OP_RENAME,
                    parent=old_parent,
                    name=old_name,
                    new_parent=new_parent,
                    new_name=new_name,
                ),
            )

    @staticmethod
    def _is_ancestor(conn: sqlite3.Connection, maybe_ancestor: int, start: int) -> bool:
        """Whether maybe_ancestor is reached by walking up from start."""
        cur = start
        while cur != 0 and cur != ROOT_INO:
            if cur == maybe_ancestor:
                return True
            row = conn.execute(
                "SELECT parent_ino FROM dirents WHERE child_ino = ? LIMIT 1", (cur,)
            ).fetchone()
            if row is None:
                return False
            cur = row[0]
        return cur == maybe_ancestor