"""Extended attributes stored inline per inode."""

from __future__ import annotations

from typing import List, Union

from telfs.types import NotFoundError


class XattrMixin:
    """Extended attribute operations, mixed into a Database."""

    def set_xattr(self, ino: int, name: str, value: Union[bytes, str]) -> None:
        """Insert or replace an attribute; any byte string, empty included."""
        if isinstance(value, str):
            value = value.encode("utf-8")
        with self._lock:
            self.connection().execute(
                "INSERT INTO xattrs(ino, name, value) VALUES (?,?,?)"
                " ON CONFLICT(ino, name) DO UPDATE SET value = excluded.value",
                (ino, name, bytes(value)),
            )

    def get_xattr(self, ino: int, name: str) -> bytes:
        """The attribute's value; raises NotFoundError if it does not exist."""
        with self._lock:
            row = (
                self.connection()
                .execute(
                    "SELECT value FROM xattrs WHERE ino = ? AND name = ?", (ino, name)
                )
                .fetchone()
            )
        if row is None:
            raise NotFoundError()
        value = row[0]
        return value.encode("utf-8") if isinstance(value, str) else bytes(value)

    def list_xattrs(self, ino: int) -> List[str]:
        """Names of the inode's attributes in lexical order."""
        with self._lock:
            rows = (
                self.connection()
                .execute("SELECT name FROM xattrs WHERE ino = ? ORDER BY name", (ino,))
                .fetchall()
            )
        return [name for (name,) in rows]

    def remove_xattr(self, ino: int, name: str) -> None:
        """Delete an attribute; raises NotFoundError if it did not exist."""
        with self._lock:
            cursor = self.connection().execute(
                "DELETE FROM xattrs WHERE ino = ? AND name = ?", (ino, name)
            )
        if cursor.rowcount == 0:
            raise NotFoundError()