from __future__ import annotations
import time
from typing import Callable, Optional

from .models import EntityKind, Stats


class StatsAccumulator:
    """Running totals for one scan, updated in step with ``TreeBuilder``."""

    def __init__(self, clock: Callable[[], float] = time.time,
                 start_time: Optional[float] = None, volume_used: int = 0):
        self._clock = clock
        self.stats = Stats(start_time=clock() if start_time is None else start_time,
                           volume_used=volume_used)
        self.frozen = False

    def touch(self):
        if not self.frozen:
            self.stats.duration = max(0.0, self._clock() - self.stats.start_time)

    def record(self, kind: EntityKind, size: int):
        if self.frozen:
            return
        s = self.stats
        s.entity_count += 1
        if kind is EntityKind.DIRECTORY:
            s.folder_count += 1
        else:
            s.file_count += 1
            s.total_size += size
        self.touch()

    def freeze(self):
        self.touch()
        self.frozen = True

    def snapshot(self) -> Stats:
        return self.stats.copy()
