"""Point-in-time gzipped copies of the metadata database, and their restoration."""

from __future__ import annotations

import contextlib
import gzip
import io
import os
import shutil
import sqlite3
import tempfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from telfs.store import Store


class SnapshotError(Exception):
    """A snapshot could not be taken or restored."""


@dataclass(frozen=True)
class Snapshot:
    """A gzipped SQLite image with the identity and journal position it covers."""

    data: bytes
    fs_uuid: str
    journal_seq: int


def _sql_string(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def take(store: Store) -> Snapshot:
    """Build a consistent gzipped copy of the store's database.

    The store stays open and usable; the copy is made with VACUUM INTO.
    """
    fs_uuid = store.fs_uuid()
    seq = store.last_journal_seq()
    with tempfile.TemporaryDirectory(prefix="telfs-snap-") as tmp_dir:
        tmp_path = os.path.join(tmp_dir, "snap.sqlite")
        try:
            store.connection().execute(f"VACUUM INTO {_sql_string(tmp_path)}")
        except sqlite3.Error as exc:
            raise SnapshotError(f"snapshot: VACUUM INTO: {exc}") from exc
        buf = io.BytesIO()
        with open(tmp_path, "rb") as src, gzip.GzipFile(fileobj=buf, mode="wb") as gz:
            shutil.copyfileobj(src, gz)
    return Snapshot(data=buf.getvalue(), fs_uuid=fs_uuid, journal_seq=seq)


def _verify_sqlite_file(path: str) -> None:
    try:
        with contextlib.closing(sqlite3.connect(path)) as conn:
            conn.execute("SELECT count(*) FROM inodes").fetchone()
    except sqlite3.Error as exc:
        raise SnapshotError(f"restore: verify: {exc}") from exc


def restore(gzipped: bytes, db_path: Union[str, os.PathLike]) -> None:
    """Write a gzipped snapshot to db_path, replacing any existing file.

    The image is checked to be a usable metadata database before anything
    at db_path is touched. Nothing may have db_path open meanwhile.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    tmp_path = str(db_path) + ".restore.tmp"
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, "wb") as out, gzip.GzipFile(
            fileobj=io.BytesIO(bytes(gzipped)), mode="rb"
        ) as gz:
            shutil.copyfileobj(gz, out)
        _verify_sqlite_file(tmp_path)
    except (OSError, EOFError, zlib.error) as exc:
        _remove_quietly(tmp_path)
        raise SnapshotError(f"restore: write tmp: {exc}") from exc
    except BaseException:
        _remove_quietly(tmp_path)
        raise
    os.replace(tmp_path, db_path)


def _remove_quietly(path: str) -> None:
    with contextlib.suppress(FileNotFoundError):
        os.remove(path)