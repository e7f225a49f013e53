"""The chunk map and the content-hash index used to share uploaded chunks."""

from __future__ import annotations

import sqlite3
from typing import List, Set, Tuple, Union

from telfs.types import Chunk, MetaError, NotFoundError

_UPSERT_CHUNK = (
    "INSERT INTO chunk_map(ino, idx, tg_message_id, size) VALUES (?,?,?,?)"
    " ON CONFLICT(ino, idx) DO UPDATE SET"
    " tg_message_id = excluded.tg_message_id, size = excluded.size"
)

_CHUNK_COLUMNS = "ino, idx, tg_message_id, size"


class ChunkMixin:
    """Chunk map operations, mixed into a Database."""

    def put_chunk(self, chunk: Chunk) -> None:
        """Insert or replace the chunk at (ino, idx).

        Replacing a slot does not delete the old channel message; that is
        the caller's job.
        """
        with self._lock:
            try:
                self.connection().execute(
                    _UPSERT_CHUNK,
                    (chunk.ino, chunk.idx, chunk.tg_message_id, chunk.size),
                )
            except sqlite3.IntegrityError as exc:
                raise MetaError(f"put chunk {chunk.ino}/{chunk.idx}: {exc}") from exc

    def get_chunk(self, ino: int, idx: int) -> Chunk:
        """The chunk at (ino, idx); raises NotFoundError if absent."""
        with self._lock:
            row = (
                self.connection()
                .execute(
                    f"SELECT {_CHUNK_COLUMNS} FROM chunk_map WHERE ino = ? AND idx = ?",
                    (ino, idx),
                )
                .fetchone()
            )
        if row is None:
            raise NotFoundError()
        return Chunk(*row)

    def list_chunks(self, ino: int) -> List[Chunk]:
        """All chunks of an inode in ascending index order."""
        with self._lock:
            rows = (
                self.connection()
                .execute(
                    f"SELECT {_CHUNK_COLUMNS} FROM chunk_map WHERE ino = ? ORDER BY idx",
                    (ino,),
                )
                .fetchall()
            )
        return [Chunk(*row) for row in rows]

    def delete_chunk(self, ino: int, idx: int) -> None:
        """Remove one chunk entry; raises NotFoundError if it did not exist."""
        with self._lock:
            cursor = self.connection().execute(
                "DELETE FROM chunk_map WHERE ino = ? AND idx = ?", (ino, idx)
            )
        if cursor.rowcount == 0:
            raise NotFoundError()

    def all_chunks(self) -> List[Chunk]:
        """Every chunk entry in (ino, idx) order."""
        with self._lock:
            rows = (
                self.connection()
                .execute(f"SELECT {_CHUNK_COLUMNS} FROM chunk_map ORDER BY ino, idx")
                .fetchall()
            )
        return [Chunk(*row) for row in rows]

    def all_chunk_message_ids(self) -> Set[int]:
        """The distinct channel message ids the chunk map still references."""
        with self._lock:
            rows = (
                self.connection()
                .execute("SELECT DISTINCT tg_message_id FROM chunk_map")
                .fetchall()
            )
        return {msg_id for (msg_id,) in rows}

    def reuse_chunk_by_hash(
        self, ino: int, idx: int, digest: Union[bytes, bytearray]
    ) -> Tuple[bool, int, int]:
        """Point (ino, idx) at an already uploaded blob with the same content hash.

        Returns (True, message id, size) when the hash index has an entry
        whose message is still referenced by some chunk, after writing the
        chunk entry in the same transaction. Returns (False, 0, 0) when
        there is no entry or its message is no longer referenced.
        """
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT tg_message_id, size FROM chunk_blob WHERE hash = ?",
                (bytes(digest),),
            ).fetchone()
            if row is None:
                return False, 0, 0
            msg_id, size = row
            alive = conn.execute(
                "SELECT 1 FROM chunk_map WHERE tg_message_id = ? LIMIT 1", (msg_id,)
            ).fetchone()
            if alive is None:
                return False, 0, 0
            try:
                conn.execute(_UPSERT_CHUNK, (ino, idx, msg_id, size))
            except sqlite3.IntegrityError as exc:
                raise MetaError(f"reuse put chunk: {exc}") from exc
        return True, msg_id, size

    def record_chunk_blob(
        self, digest: Union[bytes, bytearray], msg_id: int, size: int
    ) -> None:
        """Index a freshly uploaded blob under its content hash."""
        if not digest:
            raise ValueError("record_chunk_blob: empty hash")
        with self._lock:
            self.connection().execute(
                "INSERT INTO chunk_blob(hash, tg_message_id, size) VALUES (?,?,?)"
                " ON CONFLICT(hash) DO UPDATE SET"
                " tg_message_id = excluded.tg_message_id, size = excluded.size",
                (bytes(digest), msg_id, size),
            )

    def prune_stale_chunk_blobs(self) -> int:
        """Drop index entries whose message no chunk references; returns the count."""
        with self._lock:
            cursor = self.connection().execute(
                "DELETE FROM chunk_blob WHERE tg_message_id NOT IN"
                " (SELECT DISTINCT tg_message_id FROM chunk_map)"
            )
        return cursor.rowcount

    def count_chunk_blobs(self) -> int:
        """The number of content blobs in the hash index."""
        with self._lock:
            (count,) = (
                self.connection().execute("SELECT COUNT(*) FROM chunk_blob").fetchone()
            )
        return count

    def delete_chunks_above(self, ino: int, start_idx: int) -> int:
        """Remove every chunk of ino with idx >= start_idx; returns the count."""
        with self._lock:
            cursor = self.connection().execute(
                "DELETE FROM chunk_map WHERE ino = ? AND idx >= ?", (ino, start_idx)
            )
        return cursor.rowcount