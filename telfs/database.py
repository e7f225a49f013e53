"""The SQLite-backed metadata database: schema, transactions and key/value settings."""

from __future__ import annotations

import datetime
import os
import re
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from telfs.types import MetaError, NotFoundError

ROOT_INO = 1

KV_FS_UUID = "fs_uuid"
KV_CHUNK_SIZE = "chunk_size"
KV_TRASH_ENABLED = "trash_enabled"
KV_TRASH_TTL_SECS = "trash_ttl_secs"

DEFAULT_CHUNK_SIZE = 4 << 20
MIN_CHUNK_SIZE = 64 << 10
MAX_CHUNK_SIZE = 1536 << 20

DEFAULT_TRASH_TTL_SECS = 7 * 24 * 60 * 60

_ROOT_MODE = 0o40755

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS inodes (
  ino            INTEGER PRIMARY KEY AUTOINCREMENT,
  kind           TEXT    NOT NULL,
  mode           INTEGER NOT NULL,
  uid            INTEGER NOT NULL DEFAULT 0,
  gid            INTEGER NOT NULL DEFAULT 0,
  size           INTEGER NOT NULL DEFAULT 0,
  nlink          INTEGER NOT NULL DEFAULT 1,
  mtime          INTEGER NOT NULL DEFAULT 0,
  ctime          INTEGER NOT NULL DEFAULT 0,
  symlink_target TEXT
);

CREATE TABLE IF NOT EXISTS dirents (
  parent_ino INTEGER NOT NULL,
  name       TEXT    NOT NULL,
  child_ino  INTEGER NOT NULL,
  PRIMARY KEY (parent_ino, name),
  FOREIGN KEY (parent_ino) REFERENCES inodes(ino) ON DELETE CASCADE,
  FOREIGN KEY (child_ino)  REFERENCES inodes(ino) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_dirents_child ON dirents(child_ino);

CREATE TABLE IF NOT EXISTS chunk_map (
  ino           INTEGER NOT NULL,
  idx           INTEGER NOT NULL,
  tg_message_id INTEGER NOT NULL,
  size          INTEGER NOT NULL,
  PRIMARY KEY (ino, idx),
  FOREIGN KEY (ino) REFERENCES inodes(ino) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS xattrs (
  ino   INTEGER NOT NULL,
  name  TEXT    NOT NULL,
  value BLOB    NOT NULL,
  PRIMARY KEY (ino, name),
  FOREIGN KEY (ino) REFERENCES inodes(ino) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS journal (
  seq       INTEGER PRIMARY KEY AUTOINCREMENT,
  op_json   BLOB    NOT NULL,
  posted_at INTEGER
);

CREATE TABLE IF NOT EXISTS meta_kv (
  key   TEXT PRIMARY KEY,
  value BLOB NOT NULL
);

CREATE TABLE IF NOT EXISTS chunk_blob (
  hash          BLOB    PRIMARY KEY,
  tg_message_id INTEGER NOT NULL,
  size          INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_chunk_blob_msgid ON chunk_blob(tg_message_id);
CREATE INDEX IF NOT EXISTS idx_chunk_map_msgid  ON chunk_map(tg_message_id);
"""

_DECIMAL = re.compile(r"[+-]?[0-9]+")


def validate_chunk_size(n: int) -> None:
    """Raise ValueError unless n is a power of two within the allowed range."""
    if n < MIN_CHUNK_SIZE or n > MAX_CHUNK_SIZE:
        raise ValueError(
            f"chunk_size {n} out of range [{MIN_CHUNK_SIZE}, {MAX_CHUNK_SIZE}]"
        )
    if n & (n - 1):
        raise ValueError(f"chunk_size {n} must be a power of two")


def _parse_int(raw: bytes) -> Optional[int]:
    text = raw.decode("ascii", errors="replace")
    if not _DECIMAL.fullmatch(text):
        return None
    return int(text)


def _current_uid() -> int:
    try:
        return os.getuid() & 0xFFFFFFFF
    except AttributeError:
        return 0


def _current_gid() -> int:
    try:
        return os.getgid() & 0xFFFFFFFF
    except AttributeError:
        return 0


class Database:
    """Owns the metadata database connection. Safe to share between threads."""

    def __init__(self, path: Union[str, os.PathLike]) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self._path), isolation_level=None, check_same_thread=False
        )
        try:
            for pragma in _PRAGMAS:
                conn.execute(pragma)
            self._conn = conn
            self._init_schema()
        except sqlite3.Error as exc:
            conn.close()
            self._conn = None
            raise MetaError(f"meta: init schema: {exc}") from exc
        except BaseException:
            conn.close()
            self._conn = None
            raise

    def _init_schema(self) -> None:
        with self._lock:
            conn = self.connection()
            conn.executescript(_SCHEMA)
            conn.execute(
                "INSERT OR IGNORE INTO inodes(ino, kind, mode, uid, gid, nlink, mtime, ctime)"
                " VALUES (?, 'dir', ?, ?, ?, 1, strftime('%s','now'), strftime('%s','now'))",
                (ROOT_INO, _ROOT_MODE, _current_uid(), _current_gid()),
            )
            try:
                self.get_kv(KV_FS_UUID)
            except NotFoundError:
                self.put_kv(KV_FS_UUID, str(uuid.uuid4()).encode("ascii"))
            try:
                self.get_kv(KV_CHUNK_SIZE)
            except NotFoundError:
                self.put_kv(KV_CHUNK_SIZE, str(DEFAULT_CHUNK_SIZE).encode("ascii"))

    def close(self) -> None:
        """Release the database handle. Safe to call more than once."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def connection(self) -> sqlite3.Connection:
        """The underlying connection, for callers that need raw SQL."""
        if self._conn is None:
            raise MetaError("meta: database is closed")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction: commit on success, roll back on error.

        A transaction opened while another is active joins the outer one.
        """
        with self._lock:
            conn = self.connection()
            if conn.in_transaction:
                yield conn
                return
            conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            try:
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def get_kv(self, key: str) -> bytes:
        """Read a setting; raises NotFoundError if the key is absent."""
        with self._lock:
            row = (
                self.connection()
                .execute("SELECT value FROM meta_kv WHERE key = ?", (key,))
                .fetchone()
            )
        if row is None:
            raise NotFoundError()
        value = row[0]
        return value.encode("utf-8") if isinstance(value, str) else bytes(value)

    def put_kv(self, key: str, value: Union[bytes, str]) -> None:
        """Insert or replace a setting."""
        if isinstance(value, str):
            value = value.encode("utf-8")
        with self._lock:
            self.connection().execute(
                "INSERT INTO meta_kv(key, value) VALUES (?,?)"
                " ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, bytes(value)),
            )

    def delete_kv(self, key: str) -> None:
        """Remove a setting; raises NotFoundError if the key is absent."""
        with self._lock:
            cursor = self.connection().execute(
                "DELETE FROM meta_kv WHERE key = ?", (key,)
            )
        if cursor.rowcount == 0:
            raise NotFoundError()

    def fs_uuid(self) -> str:
        """This filesystem's UUID, fixed when the database was first created."""
        return self.get_kv(KV_FS_UUID).decode("utf-8")

    def chunk_size(self) -> int:
        """The committed chunk size, or the default if none is recorded."""
        try:
            raw = self.get_kv(KV_CHUNK_SIZE)
        except NotFoundError:
            return DEFAULT_CHUNK_SIZE
        n = _parse_int(raw)
        if n is None:
            raise MetaError(f"chunk_size kv malformed ({raw!r})")
        return n

    def set_chunk_size(self, n: int) -> None:
        """Record the chunk size after validating it."""
        validate_chunk_size(n)
        self.put_kv(KV_CHUNK_SIZE, str(n).encode("ascii"))

    def trash_enabled(self) -> bool:
        """Whether the trash safety net is on. Defaults to False."""
        try:
            return self.get_kv(KV_TRASH_ENABLED) == b"1"
        except NotFoundError:
            return False

    def set_trash_enabled(self, on: bool) -> None:
        """Turn the trash safety net on or off.

        Turning it off removes the setting, so doing so when it was never
        set raises NotFoundError.
        """
        if on:
            self.put_kv(KV_TRASH_ENABLED, b"1")
        else:
            self.delete_kv(KV_TRASH_ENABLED)

    def trash_ttl(self) -> datetime.timedelta:
        """How long trashed entries are kept; one week if not configured."""
        try:
            raw = self.get_kv(KV_TRASH_TTL_SECS)
        except NotFoundError:
            return datetime.timedelta(seconds=DEFAULT_TRASH_TTL_SECS)
        n = _parse_int(raw)
        if n is None or n < 0:
            raise MetaError(f"trash_ttl_secs kv malformed ({raw!r})")
        return datetime.timedelta(seconds=n)

    def set_trash_ttl(self, ttl: datetime.timedelta) -> None:
        """Store the trash retention; zero means the default, negative is rejected."""
        if ttl < datetime.timedelta(0):
            raise ValueError("trash ttl must be non-negative")
        secs = ttl // datetime.timedelta(seconds=1)
        if secs == 0:
            secs = DEFAULT_TRASH_TTL_SECS
        self.put_kv(KV_TRASH_TTL_SECS, str(secs).encode("ascii"))