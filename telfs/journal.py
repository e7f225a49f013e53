"""The local write-ahead journal of metadata mutations awaiting posting."""

from __future__ import annotations

import sqlite3
from typing import List, Union

from telfs.types import JournalEntry, JournalOp, NotFoundError


class JournalMixin:
    """Journal operations, mixed into a Database."""

    def append_journal(self, op_json: Union[bytes, str]) -> int:
        """Insert an unposted journal entry and return its sequence number."""
        if isinstance(op_json, str):
            op_json = op_json.encode("utf-8")
        with self._lock:
            cursor = self.connection().execute(
                "INSERT INTO journal(op_json) VALUES (?)", (bytes(op_json),)
            )
        return cursor.lastrowid

    def _append_journal_op(self, conn: sqlite3.Connection, op: JournalOp) -> int:
        """Record an op on conn, inside the caller's transaction."""
        cursor = conn.execute(
            "INSERT INTO journal(op_json) VALUES (?)", (op.to_json(),)
        )
        return cursor.lastrowid

    def pending_journal(self) -> List[JournalEntry]:
        """Entries not yet posted to the channel, in sequence order."""
        with self._lock:
            rows = (
                self.connection()
                .execute(
                    "SELECT seq, op_json, posted_at FROM journal"
                    " WHERE posted_at IS NULL ORDER BY seq"
                )
                .fetchall()
            )
        return [
            JournalEntry(
                seq=seq,
                op_json=payload.encode("utf-8") if isinstance(payload, str) else bytes(payload),
                posted_at=posted_at,
            )
            for seq, payload, posted_at in rows
        ]

    def mark_journal_posted(self, seq: int, posted_at: int) -> None:
        """Record that seq has been posted; raises NotFoundError for an unknown seq."""
        with self._lock:
            cursor = self.connection().execute(
                "UPDATE journal SET posted_at = ? WHERE seq = ?", (posted_at, seq)
            )
        if cursor.rowcount == 0:
            raise NotFoundError()

    def delete_journal_up_to(self, up_to: int) -> int:
        """Remove posted entries with seq <= up_to; returns how many were removed."""
        with self._lock:
            cursor = self.connection().execute(
                "DELETE FROM journal WHERE seq <= ? AND posted_at IS NOT NULL",
                (up_to,),
            )
        return cursor.rowcount

    def last_journal_seq(self) -> int:
        """The highest sequence number ever assigned, or 0 if none."""
        with self._lock:
            row = (
                self.connection()
                .execute("SELECT seq FROM sqlite_sequence WHERE name = 'journal'")
                .fetchone()
            )
        if row is None or row[0] is None:
            return 0
        return int(row[0])