# python
"""
Utilities module behavioral tests.

Scope
- Unset sentinel: falsiness, singleton, unions in isinstance, copy behavior.
- coalesce: Unset replaced, other falsey values preserved.
- rename: both call forms.
- mirror: read-only properties returning copies of containers.

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import copy
import unittest
from unittest import TestCase

from cmdtree.utils import Unset, UnsetType, coalesce, rename, mirror


class TestUnset(TestCase):
    """Behavioral tests for the Unset sentinel."""

    def testUnsetIsFalsey(self):
        self.assertFalse(Unset)

    def testUnsetIsSingleton(self):
        self.assertIs(UnsetType(), Unset)

    def testUnsetRepr(self):
        self.assertEqual(repr(Unset), "Unset")

    def testUnsetUnionInIsinstance(self):
        self.assertTrue(isinstance("x", str | Unset))
        self.assertTrue(isinstance(Unset, str | Unset))
        self.assertFalse(isinstance(3, str | Unset))

    def testUnsetSurvivesCopies(self):
        self.assertIs(copy.copy(Unset), Unset)
        self.assertIs(copy.deepcopy(Unset), Unset)

    def testUnsetTypeIsNotSubclassable(self):
        with self.assertRaises(TypeError):
            type("Derived", (UnsetType,), {})


class TestCoalesce(TestCase):
    """Behavioral tests for coalesce()."""

    def testCoalesceReplacesUnset(self):
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")

    def testCoalesceDefaultsToNone(self):
        self.assertIsNone(coalesce(Unset))

    def testCoalescePreservesFalseyValues(self):
        for value in (None, 0, "", [], False):
            self.assertIs(coalesce(value, "fallback"), value)


class TestRename(TestCase):
    """Behavioral tests for rename()."""

    def testRenameDirectForm(self):
        def f():
            pass

        self.assertIs(rename(f, "g"), f)
        self.assertEqual(f.__name__, "g")
        self.assertEqual(f.__qualname__, "g")

    def testRenameDecoratorForm(self):
        @rename("handler")
        def f():
            pass

        self.assertEqual(f.__name__, "handler")

    def testRenameRejectsBadArguments(self):
        with self.assertRaises(TypeError):
            rename(1, "x")
        with self.assertRaises(TypeError):
            rename(lambda: None, 1)
        with self.assertRaises(TypeError):
            rename()


class TestMirror(TestCase):
    """Behavioral tests for mirror() properties."""

    def setUp(self):
        class Box:
            items = mirror("items")
            label = mirror("label")

            def __init__(self):
                self._items = ["a", "b"]
                self._label = "box"

        self.box = Box()

    def testMirrorReadsBackingField(self):
        self.assertEqual(self.box.items, ["a", "b"])
        self.assertEqual(self.box.label, "box")

    def testMirrorReturnsCopies(self):
        self.box.items.append("c")
        self.assertEqual(self.box.items, ["a", "b"])

    def testMirrorIsReadOnly(self):
        with self.assertRaises(AttributeError):
            self.box.items = []


class TestPackageMetadata(TestCase):
    """Behavioral tests for the package metadata."""

    def testMetadata(self):
        import cmdtree

        self.assertEqual(cmdtree.__title__, "cmdtree")
        self.assertEqual(cmdtree.__author__, "cmdtree developers")
        self.assertEqual(cmdtree.version_info[:3], (0, 0, 0))
        self.assertIn("Parser", cmdtree.__all__)


if __name__ == "__main__":
    unittest.main()
