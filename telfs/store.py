"""The complete metadata store."""

from __future__ import annotations

from telfs.chunks import ChunkMixin
from telfs.database import Database
from telfs.dirents import DirentMixin
from telfs.inodes import InodeMixin
from telfs.journal import JournalMixin
from telfs.replay import ReplayMixin
from telfs.xattrs import XattrMixin


class Store(
    ReplayMixin,
    DirentMixin,
    ChunkMixin,
    InodeMixin,
    XattrMixin,
    JournalMixin,
    Database,
):
    """The filesystem metadata database with every operation on it.

    Opening creates the schema, the root directory and the filesystem's
    settings on first use; later opens leave existing data untouched.
    """