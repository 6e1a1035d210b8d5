from __future__ import annotations
from typing import Iterator, List, Optional, Tuple
from .models import Entity

SORT_KEYS = ("size", "name")


def sorted_children(node: Entity, key: str = "size", descending: bool = True) -> List[Entity]:
    if key not in SORT_KEYS:
        raise ValueError(f"unknown sort key {key!r}, expected one of {SORT_KEYS}")
    if key == "name":
        return sorted(node.children, key=lambda n: n.name.lower(), reverse=descending)
    # ties: directories first, then by name
    kids = sorted(node.children, key=lambda n: (not n.is_dir, n.name.lower()))
    kids.sort(key=lambda n: n.size, reverse=descending)
    return kids


def top_children_for_view(node: Entity, limit: int = 450) -> List[Entity]:
    kids = [c for c in node.children if c.size > 0]
    kids.sort(key=lambda n: n.size, reverse=True)
    return kids[:limit]


def flatten_hierarchy(node: Entity, max_depth: Optional[int] = None,
                      key: str = "size", descending: bool = True) -> Iterator[Tuple[int, Entity]]:
    """Yield ``(level, entity)`` rows below ``node`` in table order.

    Level 0 is ``node``'s direct children; ``max_depth`` caps how many levels
    are expanded.
    """
    stack: List[Tuple[int, Entity]] = [(0, c) for c in reversed(sorted_children(node, key, descending))]
    while stack:
        level, entity = stack.pop()
        yield level, entity
        if entity.children and (max_depth is None or level + 1 < max_depth):
            for child in reversed(sorted_children(entity, key, descending)):
                stack.append((level + 1, child))


def item_count(entity: Entity) -> int:
    """Number of files in ``entity``'s subtree (1 for a file)."""
    count = 0
    stack = [entity]
    while stack:
        n = stack.pop()
        if not n.is_dir:
            count += 1
        stack.extend(n.children)
    return count


def size_shares(node: Entity, limit: int = 10) -> List[Tuple[Optional[Entity], float]]:
    """Largest children with their fraction of ``node.size``.

    When children are cut off by ``limit`` the remainder is returned as one
    trailing ``(None, fraction)`` entry.
    """
    if node.size <= 0:
        return []
    top = top_children_for_view(node, limit=len(node.children))
    shown = top[:limit]
    out: List[Tuple[Optional[Entity], float]] = [(c, c.size / node.size) for c in shown]
    rest = sum(c.size for c in top[limit:])
    if rest > 0:
        out.append((None, rest / node.size))
    return out
