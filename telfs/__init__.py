"""SQLite-backed filesystem metadata store with journaling, chunk dedup, snapshots and a snapshot envelope format."""

__version__ = "0.1.0"