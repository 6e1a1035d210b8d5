"""Tests for incremental tree construction from scan records."""

from __future__ import annotations

import itertools
import os
import unittest

from spacescan.models import Entity, EntityKind, ScanRecord
from spacescan.tree import TreeBuilder, insert, normalize_root

ROOT = os.path.join(os.sep, "data", "R")


def _p(*parts: str) -> str:
    return os.path.join(ROOT, *parts)


def _file(rel: str, size: int) -> ScanRecord:
    return ScanRecord(_p(*rel.split("/")), EntityKind.FILE, size)


def _dir(rel: str) -> ScanRecord:
    return ScanRecord(_p(*rel.split("/")), EntityKind.DIRECTORY, 0)


def _shape(entity: Entity) -> dict[str, tuple[str, int]]:
    out = {}
    stack = [entity]
    while stack:
        node = stack.pop()
        out[node.path] = (node.kind.value, node.size)
        stack.extend(node.children)
    return out


def _assert_sizes_consistent(test: unittest.TestCase, entity: Entity) -> None:
    stack = [entity]
    while stack:
        node = stack.pop()
        if node.is_dir:
            test.assertEqual(node.size, sum(c.size for c in node.children), node.path)
        stack.extend(node.children)


class TreeBuilderTests(unittest.TestCase):
    def test_two_files_in_sibling_folders_aggregate_up_to_root(self) -> None:
        builder = TreeBuilder(ROOT)
        for record in (_dir("a"), _dir("a/b"), _file("a/b/file1", 100), _dir("a/c"), _file("a/c/file2", 50)):
            self.assertTrue(builder.insert(record))

        root = builder.root
        a = builder.find(_p("a"))
        self.assertEqual(root.size, 150)
        self.assertEqual(a.size, 150)
        self.assertEqual(builder.find(_p("a", "b")).size, 100)
        self.assertEqual(builder.find(_p("a", "c")).size, 50)
        self.assertEqual([c.name for c in root.children], ["a"])
        self.assertEqual([c.name for c in a.children], ["b", "c"])
        self.assertEqual(builder.node_count, 6)
        _assert_sizes_consistent(self, root)

    def test_deep_file_materializes_missing_ancestors(self) -> None:
        builder = TreeBuilder(ROOT)
        self.assertTrue(builder.insert(_file("a/b/c/file", 42)))

        a = builder.find(_p("a"))
        b = builder.find(_p("a", "b"))
        c = builder.find(_p("a", "b", "c"))
        for node, name in ((a, "a"), (b, "b"), (c, "c")):
            self.assertIsNotNone(node)
            self.assertEqual(node.kind, EntityKind.DIRECTORY)
            self.assertEqual(node.name, name)
            self.assertEqual(node.size, 42)
        self.assertEqual(builder.root.size, 42)
        self.assertEqual(builder.node_count, 5)

    def test_directory_record_after_materialization_is_accepted_once(self) -> None:
        builder = TreeBuilder(ROOT)
        builder.insert(_file("a/b/file", 10))

        self.assertTrue(builder.insert(_dir("a/b")))
        self.assertFalse(builder.insert(_dir("a/b")))
        self.assertEqual(builder.node_count, 4)
        self.assertEqual(builder.find(_p("a", "b")).size, 10)

    def test_duplicate_file_is_not_double_counted(self) -> None:
        builder = TreeBuilder(ROOT)
        record = _file("a/file", 70)
        self.assertTrue(builder.insert(record))
        before = _shape(builder.root)

        self.assertFalse(builder.insert(record))
        self.assertEqual(_shape(builder.root), before)
        self.assertEqual(len(builder.find(_p("a")).children), 1)

    def test_insertion_order_does_not_change_result(self) -> None:
        records = [
            _dir("a"),
            _dir("a/b"),
            _file("a/b/file1", 100),
            _file("a/c/file2", 50),
            _file("top.bin", 7),
        ]
        expected = None
        for perm in itertools.permutations(records):
            builder = TreeBuilder(ROOT)
            for record in perm:
                builder.insert(record)
            shape = _shape(builder.root)
            if expected is None:
                expected = shape
            self.assertEqual(shape, expected)
        self.assertEqual(expected[ROOT], ("directory", 157))

    def test_rejects_records_outside_root(self) -> None:
        builder = TreeBuilder(ROOT)
        with self.assertLogs("spacescan.tree", level="WARNING"):
            self.assertFalse(builder.insert(ScanRecord(os.path.join(os.sep, "elsewhere", "x"), EntityKind.FILE, 5)))
        with self.assertLogs("spacescan.tree", level="WARNING"):
            self.assertFalse(builder.insert(ScanRecord(ROOT, EntityKind.DIRECTORY, 0)))
        self.assertEqual(builder.root.children, [])
        self.assertEqual(builder.root.size, 0)

    def test_kind_conflict_leaves_tree_untouched(self) -> None:
        builder = TreeBuilder(ROOT)
        builder.insert(_file("a", 5))
        before = _shape(builder.root)

        with self.assertLogs("spacescan.tree", level="WARNING"):
            self.assertFalse(builder.insert(_file("a/b/c", 9)))
        self.assertEqual(_shape(builder.root), before)

    def test_trailing_separator_on_root_is_normalized(self) -> None:
        builder = TreeBuilder(ROOT + os.sep)
        self.assertEqual(builder.root.path, ROOT)
        self.assertEqual(builder.root.name, "R")
        builder.insert(_file("x", 3))
        self.assertEqual(builder.root.children[0].path, _p("x"))

    def test_keep_sorted_orders_new_directories_by_size(self) -> None:
        builder = TreeBuilder(ROOT, keep_sorted=True)
        builder.insert(_file("small/f", 1))
        builder.insert(_file("big/f", 1000))
        self.assertEqual([c.name for c in builder.root.children], ["big", "small"])

        unsorted = TreeBuilder(ROOT)
        unsorted.insert(_file("small/f", 1))
        unsorted.insert(_file("big/f", 1000))
        self.assertEqual([c.name for c in unsorted.root.children], ["small", "big"])

    def test_keep_sorted_orders_nested_directories_by_final_size(self) -> None:
        builder = TreeBuilder(ROOT, keep_sorted=True)
        builder.insert(_file("a/small/f", 1))
        builder.insert(_file("a/big/deep/f", 500))
        builder.insert(_file("b/f", 10))
        a = builder.find(os.path.join(ROOT, "a"))
        self.assertEqual([c.name for c in a.children], ["big", "small"])
        self.assertEqual([c.name for c in builder.root.children], ["a", "b"])

    def test_normalize_root_keeps_filesystem_root(self) -> None:
        self.assertEqual(normalize_root("/"), "/")
        self.assertEqual(normalize_root("/data/R/"), "/data/R")


class BareInsertTests(unittest.TestCase):
    def test_insert_into_plain_entity_root(self) -> None:
        root = Entity(name="R", path=ROOT, kind=EntityKind.DIRECTORY)
        self.assertTrue(insert(root, _file("a/b/file1", 100)))
        self.assertTrue(insert(root, _file("a/c/file2", 50)))
        self.assertFalse(insert(root, _file("a/c/file2", 50)))

        self.assertEqual(root.size, 150)
        a = root.children[0]
        self.assertEqual((a.name, a.size), ("a", 150))
        self.assertEqual(sorted((c.name, c.size) for c in a.children), [("b", 100), ("c", 50)])
        _assert_sizes_consistent(self, root)


if __name__ == "__main__":
    unittest.main()
