from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from typing import Callable, FrozenSet, Mapping, Optional

DEFAULT_SNAPSHOT_THRESHOLD = 10 * 1024 * 1024
DEFAULT_IGNORED_NAMES: FrozenSet[str] = frozenset({".DS_Store"})

# Called with a directory path; True means "record the directory, don't enter it".
SkipPredicate = Callable[[str], bool]


def bundle_predicate(*suffixes: str) -> SkipPredicate:
    """Build a ``skip_descendants`` predicate for opaque directory bundles.

    ``bundle_predicate(".app", ".photoslibrary")`` treats matching directories
    as single entries whose contents are never enumerated.
    """
    lowered = tuple(s.lower() for s in suffixes if s)

    def is_bundle(path: str) -> bool:
        name = os.path.basename(path.rstrip("\\/")).lower()
        return bool(lowered) and name.endswith(lowered)

    return is_bundle


@dataclass(frozen=True)
class ScanConfig:
    include_hidden: bool = True
    snapshot_threshold: int = DEFAULT_SNAPSHOT_THRESHOLD
    follow_symlinks: bool = False
    ignored_names: FrozenSet[str] = DEFAULT_IGNORED_NAMES
    skip_descendants: Optional[SkipPredicate] = field(default=None, compare=False)
    keep_sorted: bool = False

    def __post_init__(self):
        if self.snapshot_threshold <= 0:
            raise ValueError(f"snapshot_threshold must be positive, got {self.snapshot_threshold}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "ScanConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown scan options: {', '.join(unknown)}")
        kwargs = dict(data)
        if "ignored_names" in kwargs:
            names = kwargs["ignored_names"]
            if isinstance(names, str):
                names = [names]
            kwargs["ignored_names"] = frozenset(names)  # type: ignore[arg-type]
        if "snapshot_threshold" in kwargs:
            kwargs["snapshot_threshold"] = int(kwargs["snapshot_threshold"])  # type: ignore[arg-type]
        return cls(**kwargs)  # type: ignore[arg-type]
