from __future__ import annotations
import os
import stat as statmod
import logging
from typing import Callable, Iterator, List, Optional, Set

from .config import ScanConfig
from .models import EntityKind, ScanRecord

log = logging.getLogger(__name__)

CancelCheck = Callable[[], bool]
ErrorCb = Callable[[str, OSError], None]  # (path, error)

_FILE_ATTRIBUTE_HIDDEN = getattr(statmod, "FILE_ATTRIBUTE_HIDDEN", 0x2)


class RootAccessError(OSError):
    """The scan root itself cannot be stat'd or listed."""


def is_hidden(name: str, st: Optional[os.stat_result] = None) -> bool:
    if name.startswith("."):
        return True
    attrs = getattr(st, "st_file_attributes", 0) if st is not None else 0
    return bool(attrs & _FILE_ATTRIBUTE_HIDDEN)


def walk(root: str,
         config: Optional[ScanConfig] = None,
         cancel_flag: Optional[CancelCheck] = None,
         on_error: Optional[ErrorCb] = None) -> Iterator[ScanRecord]:
    """Lazily enumerate everything under ``root`` as ``ScanRecord``s.

    Directories are always reported (size 0), files only when their size is
    positive. Entries that fail to stat are reported to ``on_error`` and
    skipped; only a failure on ``root`` itself raises ``RootAccessError``.
    ``cancel_flag`` is polled before every entry.
    """
    config = config or ScanConfig()
    root = os.path.abspath(root)

    def cancelled() -> bool:
        return bool(cancel_flag and cancel_flag())

    def skipped(path: str, exc: OSError):
        log.warning("skipping %s: %s", path, exc)
        if on_error:
            on_error(path, exc)

    try:
        root_st = os.stat(root)
    except OSError as e:
        raise RootAccessError(e.errno, f"cannot access {root}: {e.strerror or e}") from e
    if not statmod.S_ISDIR(root_st.st_mode):
        raise RootAccessError(f"not a directory: {root}")

    follow = config.follow_symlinks
    visited: Set[str] = {os.path.realpath(root)} if follow else set()
    stack: List[str] = [root]

    while stack:
        dir_path = stack.pop()
        if cancelled():
            return
        try:
            with os.scandir(dir_path) as it:
                entries = list(it)
        except OSError as e:
            if dir_path == root:
                raise RootAccessError(e.errno, f"cannot list {root}: {e.strerror or e}") from e
            skipped(dir_path, e)
            continue

        subdirs: List[str] = []
        for entry in entries:
            if cancelled():
                return

            name = entry.name
            if name in config.ignored_names:
                continue
            if not config.include_hidden and name.startswith("."):
                continue

            try:
                if entry.is_symlink() and not follow:
                    continue
                st = entry.stat(follow_symlinks=follow)
            except OSError as e:
                skipped(entry.path, e)
                continue

            if not config.include_hidden and is_hidden(name, st):
                continue

            if statmod.S_ISDIR(st.st_mode):
                descend = True
                if follow:
                    real = os.path.realpath(entry.path)
                    if real in visited:
                        log.debug("not descending into %s: already visited as %s", entry.path, real)
                        descend = False
                    else:
                        visited.add(real)
                if descend and config.skip_descendants and config.skip_descendants(entry.path):
                    descend = False
                yield ScanRecord(entry.path, EntityKind.DIRECTORY, 0)
                if descend:
                    subdirs.append(entry.path)
            else:
                size = int(getattr(st, "st_size", 0) or 0)
                if size <= 0:
                    continue
                yield ScanRecord(entry.path, EntityKind.FILE, size)

        stack.extend(reversed(subdirs))
