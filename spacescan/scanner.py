from __future__ import annotations
import os
import time
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .config import ScanConfig
from .models import Entity, Snapshot, Stats, copy_tree
from .stats import StatsAccumulator
from .throttle import SnapshotThrottler
from .tree import TreeBuilder
from .walker import RootAccessError, walk, CancelCheck, ErrorCb

log = logging.getLogger(__name__)

SnapshotCb = Callable[[Snapshot], None]


@dataclass
class ScanOutcome:
    root: Entity
    stats: Stats
    cancelled: bool
    error: Optional[str] = None
    snapshots: int = 0


def scan_tree(root: str,
              config: Optional[ScanConfig] = None,
              publish: Optional[SnapshotCb] = None,
              cancel_flag: Optional[CancelCheck] = None,
              on_error: Optional[ErrorCb] = None,
              clock: Callable[[], float] = time.time,
              volume_used: int = 0) -> ScanOutcome:
    """Scan ``root`` on the calling thread, publishing snapshots as it goes.

    Raises ``RootAccessError`` before publishing anything when ``root`` is not
    a directory. A root that turns unreadable once enumeration starts ends
    the scan with ``outcome.error`` set; the final snapshot is published in
    every case.
    """
    config = config or ScanConfig()
    root = os.path.abspath(root)
    if not os.path.isdir(root):
        raise RootAccessError(f"not a directory: {root}")

    builder = TreeBuilder(root, keep_sorted=config.keep_sorted)
    acc = StatsAccumulator(clock=clock, volume_used=volume_used)

    def make_snapshot(final: bool, sequence: int) -> Snapshot:
        acc.touch()
        return Snapshot(root=copy_tree(builder.root), stats=acc.snapshot(),
                        final=final, sequence=sequence)

    throttler = SnapshotThrottler(publish or (lambda _s: None), make_snapshot,
                                  threshold=config.snapshot_threshold)
    throttler.publish_initial()

    error: Optional[str] = None
    try:
        for record in walk(root, config, cancel_flag=cancel_flag, on_error=on_error):
            if not builder.insert(record):
                continue
            acc.record(record.kind, record.size)
            if not record.is_dir:
                throttler.observe(record.size)
    except RootAccessError as e:
        log.error("scan of %s failed: %s", root, e)
        error = str(e)
    finally:
        acc.freeze()
        throttler.publish_final()

    cancelled = bool(cancel_flag and cancel_flag())
    log.info("scan of %s %s: %d files, %d folders, %d bytes in %.1fs",
             root, "cancelled" if cancelled else "finished",
             acc.stats.file_count, acc.stats.folder_count,
             acc.stats.total_size, acc.stats.duration)
    return ScanOutcome(root=builder.root, stats=acc.snapshot(), cancelled=cancelled,
                       error=error, snapshots=throttler.published)
