from __future__ import annotations
import os
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import psutil

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Volume:
    mountpoint: str
    fstype: str
    total: int
    used: int
    free: int

    @property
    def used_ratio(self) -> float:
        return self.used / self.total if self.total else 0.0


def _read_volume(mountpoint: str, fstype: str = "") -> Optional[Volume]:
    try:
        u = psutil.disk_usage(mountpoint)
    except OSError as e:
        log.debug("no usage for %s: %s", mountpoint, e)
        return None
    return Volume(mountpoint, fstype, int(u.total), int(u.used), int(u.free))


def list_volumes() -> List[Volume]:
    by_mount: Dict[str, Volume] = {}
    for part in psutil.disk_partitions(all=False):
        if not part.mountpoint:
            continue
        mp = os.path.abspath(part.mountpoint)
        if mp in by_mount:
            continue
        vol = _read_volume(mp, part.fstype)
        if vol is not None:
            by_mount[mp] = vol
    return sorted(by_mount.values(), key=lambda v: v.mountpoint.lower())


def _contains(mountpoint: str, path: str) -> bool:
    try:
        return os.path.commonpath([mountpoint, path]) == mountpoint
    except ValueError:  # different drives
        return False


def volume_for(path: str, volumes: Optional[List[Volume]] = None) -> Optional[Volume]:
    """The mounted volume holding ``path`` (deepest mountpoint wins)."""
    path = os.path.realpath(path)
    candidates = [v for v in (list_volumes() if volumes is None else volumes) if _contains(v.mountpoint, path)]
    if candidates:
        return max(candidates, key=lambda v: len(v.mountpoint))
    # not under a listed partition (bind mounts, containers)
    return _read_volume(path)


def estimate_used_bytes(paths: Iterable[str]) -> int:
    # Upper bound for a folder scan: bytes used on the volumes holding it,
    # each volume counted once.
    vols = list_volumes()
    used: Dict[str, int] = {}
    for p in paths:
        vol = volume_for(p, vols)
        if vol is not None:
            used[vol.mountpoint] = vol.used
    return sum(used.values())
