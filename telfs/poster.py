"""Background posting of pending journal entries to the channel."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from telfs.store import Store

DEFAULT_POSTER_INTERVAL = 5.0


class JournalSession(Protocol):
    """The channel operation the poster needs."""

    def upload_journal_op(
        self, op_json: bytes, seq: int, posted_at: int, fs_uuid: str
    ) -> int:
        ...


@dataclass
class JournalPoster:
    """Drains the local journal into the channel every interval seconds."""

    store: Store
    session: JournalSession
    interval: float = DEFAULT_POSTER_INTERVAL
    logger: Optional[logging.Logger] = None

    def run(self, stop: threading.Event) -> None:
        """Drain periodically until stop is set, then drain once more.

        Failures are logged and never end the loop.
        """
        interval = self.interval if self.interval > 0 else DEFAULT_POSTER_INTERVAL
        logger = self.logger or logging.getLogger(__name__)
        while not stop.wait(interval):
            try:
                self.drain_once()
            except Exception as exc:
                logger.warning("[journal-poster] drain: %s", exc)
        try:
            self.drain_once()
        except Exception as exc:
            logger.warning("[journal-poster] final drain: %s", exc)

    def drain_once(self) -> None:
        """Post every pending entry in order, marking each as it lands.

        Stops at the first failure; later entries stay pending.
        """
        pending = self.store.pending_journal()
        if not pending:
            return
        fs_uuid = self.store.fs_uuid()
        for entry in pending:
            try:
                self.session.upload_journal_op(
                    entry.op_json, entry.seq, int(time.time()), fs_uuid
                )
            except Exception as exc:
                raise RuntimeError(f"post seq={entry.seq}: {exc}") from exc
            self.store.mark_journal_posted(entry.seq, int(time.time()))