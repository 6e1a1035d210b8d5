from __future__ import annotations
import os
import logging
from typing import Dict, List, Optional, Set

from .models import Entity, EntityKind, ScanRecord

log = logging.getLogger(__name__)


def normalize_root(path: str) -> str:
    stripped = path.rstrip("\\/")
    if not stripped:
        return path[:1]  # "/"
    if len(stripped) == 2 and stripped[1] == ":":
        return stripped + os.sep  # C:\
    return stripped


def _root_name(root_path: str) -> str:
    return os.path.basename(root_path.rstrip("\\/")) or root_path


class TreeBuilder:
    """Incrementally grows an ``Entity`` tree from unordered scan records.

    Records may arrive in any order: missing ancestor directories are created
    on the fly with size 0 and every inserted file's size is added to each of
    its ancestors. A flat ``path -> Entity`` index keeps lookups O(1).

    Only the scan worker touches a builder; readers get ``copy_tree`` copies.
    """

    def __init__(self, root_path: str, keep_sorted: bool = False):
        self.root_path = normalize_root(root_path)
        self.root = Entity(name=_root_name(self.root_path), path=self.root_path,
                           kind=EntityKind.DIRECTORY)
        self.keep_sorted = keep_sorted
        self._prefix = self.root_path if self.root_path.endswith(("/", "\\")) else self.root_path + os.sep
        self._index: Dict[str, Entity] = {self.root_path: self.root}
        self._presented: Set[str] = set()

    @property
    def node_count(self) -> int:
        return len(self._index)

    def find(self, path: str) -> Optional[Entity]:
        return self._index.get(path)

    def _relative_parts(self, path: str) -> Optional[List[str]]:
        if os.altsep:
            path = path.replace(os.altsep, os.sep)
        if not path.startswith(self._prefix):
            return None
        parts = [p for p in path[len(self._prefix):].split(os.sep) if p]
        return parts or None

    def _sort_children(self, node: Entity):
        if self.keep_sorted:
            node.children.sort(key=lambda n: n.size, reverse=True)

    def insert(self, record: ScanRecord) -> bool:
        """Add ``record`` to the tree; False when nothing was accepted.

        A path already presented once is ignored. A directory record for a
        directory that was created earlier as a missing ancestor is accepted
        without creating a node. A rejected record leaves the tree untouched.
        """
        parts = self._relative_parts(record.path)
        if parts is None:
            log.warning("ignoring %s: not below scan root %s", record.path, self.root_path)
            return False

        # paths are rebuilt from components so "a//b" and "a/b" collide
        paths = []
        cur = self.root_path
        for comp in parts:
            cur = os.path.join(cur, comp)
            paths.append(cur)
        path = paths[-1]

        if path in self._presented:
            return False
        for ancestor_path in paths[:-1]:
            node = self._index.get(ancestor_path)
            if node is not None and not node.is_dir:
                log.warning("ignoring %s: ancestor %s is a file", record.path, ancestor_path)
                return False
        existing = self._index.get(path)
        if existing is not None:
            if existing.kind is not record.kind:
                log.warning("ignoring %s: already present as %s", path, existing.kind.value)
                return False
            # directory materialized as an ancestor before its own record
            self._presented.add(path)
            return True

        parent = self.root
        chain = [self.root]
        grew = []  # parents that got a new directory
        for comp, ancestor_path in zip(parts[:-1], paths[:-1]):
            node = self._index.get(ancestor_path)
            if node is None:
                node = Entity(name=comp, path=ancestor_path, kind=EntityKind.DIRECTORY)
                self._index[ancestor_path] = node
                parent.children.append(node)
                grew.append(parent)
            chain.append(node)
            parent = node

        node = Entity(name=parts[-1], path=path, kind=record.kind, size=record.size)
        self._index[path] = node
        self._presented.add(path)
        parent.children.append(node)
        if node.is_dir:
            grew.append(parent)

        if record.size:
            for ancestor in chain:
                ancestor.size += record.size
        # sizes must be final before ordering
        for p in grew:
            self._sort_children(p)
        return True


def insert(root: Entity, record: ScanRecord) -> bool:
    """One-off insertion into a bare ``Entity`` root.

    Rebuilds the path index from ``root`` on every call; use ``TreeBuilder``
    for a whole scan. Existing files count as already presented.
    """
    builder = TreeBuilder(root.path)
    builder.root = root
    builder._index = {builder.root_path: root}
    stack = [root]
    while stack:
        node = stack.pop()
        for child in node.children:
            builder._index[child.path] = child
            if not child.is_dir:
                builder._presented.add(child.path)
            elif child.children:
                stack.append(child)
    return builder.insert(record)
