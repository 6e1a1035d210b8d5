from __future__ import annotations
import os
import enum
from dataclasses import dataclass, field, replace
from typing import List

from .utils import format_bytes, format_duration, clamp


class EntityKind(enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"


class ScanStatus(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.CANCELLED, ScanStatus.FAILED)


@dataclass
class Entity:
    name: str
    path: str
    kind: EntityKind
    size: int = 0
    children: List["Entity"] = field(default_factory=list)

    @property
    def is_dir(self) -> bool:
        return self.kind is EntityKind.DIRECTORY

    @property
    def formatted_size(self) -> str:
        return format_bytes(self.size)


@dataclass(frozen=True)
class ScanRecord:
    path: str
    kind: EntityKind
    size: int = 0

    @property
    def name(self) -> str:
        return os.path.basename(self.path.rstrip("\\/")) or self.path

    @property
    def is_dir(self) -> bool:
        return self.kind is EntityKind.DIRECTORY


@dataclass
class Stats:
    start_time: float
    duration: float = 0.0
    total_size: int = 0
    folder_count: int = 0
    file_count: int = 0
    entity_count: int = 0
    volume_used: int = 0  # bytes used on the root's volume, 0 = unknown

    @property
    def formatted_size(self) -> str:
        return format_bytes(self.total_size)

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration)

    def progress_ratio(self) -> float:
        if self.volume_used <= 0:
            return 0.0
        return clamp(self.total_size / self.volume_used, 0.0, 1.0)

    def copy(self) -> "Stats":
        return replace(self)


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time copy of one scan's tree and stats.

    ``root`` and ``stats`` are private copies made by the worker at
    publication time; receivers may keep them around but must not mutate them.
    """

    root: Entity
    stats: Stats
    final: bool = False
    sequence: int = 0


def copy_tree(root: Entity) -> Entity:
    # iterative: scanned trees can be deeper than the recursion limit
    out = Entity(name=root.name, path=root.path, kind=root.kind, size=root.size)
    stack = [(root, out)]
    while stack:
        src, dst = stack.pop()
        for child in src.children:
            c = Entity(name=child.name, path=child.path, kind=child.kind, size=child.size)
            dst.children.append(c)
            if child.children:
                stack.append((child, c))
    return out
