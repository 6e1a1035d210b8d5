from __future__ import annotations
import logging
from typing import Callable

from .config import DEFAULT_SNAPSHOT_THRESHOLD
from .models import Snapshot

log = logging.getLogger(__name__)

PublishCb = Callable[[Snapshot], None]
SnapshotFactory = Callable[[bool, int], Snapshot]  # (final, sequence)


class SnapshotThrottler:
    """Bounds how often the worker hands tree copies to the observer.

    One snapshot right after the root is confirmed, one each time
    ``threshold`` file bytes have been processed since the previous one,
    and exactly one final snapshot when the scan ends.
    """

    def __init__(self, publish: PublishCb, make_snapshot: SnapshotFactory,
                 threshold: int = DEFAULT_SNAPSHOT_THRESHOLD):
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self._publish = publish
        self._make_snapshot = make_snapshot
        self.threshold = threshold
        self.accumulated = 0
        self.published = 0
        self.finished = False

    def _emit(self, final: bool):
        self.published += 1
        self._publish(self._make_snapshot(final, self.published))

    def publish_initial(self):
        if self.published == 0 and not self.finished:
            self._emit(False)

    def observe(self, bytes_just_added: int) -> bool:
        if self.finished:
            return False
        self.accumulated += bytes_just_added
        if self.accumulated < self.threshold:
            return False
        self.accumulated = 0
        self._emit(False)
        return True

    def publish_final(self):
        if self.finished:
            log.debug("final snapshot already published")
            return
        self.finished = True
        self._emit(True)
