"""
Tests for the filter tree and its in-memory evaluation.
"""

import unittest

from modindex.core.filters import (
    And, Contains, MatchAll, Or, TextMatch, field_values, matches
)
from tests.fixtures.sample_data import SAMPLE_PACKAGE_RECORD


class TestFilterNodes(unittest.TestCase):
    """Test node construction and rendering."""

    def test_rejects_unknown_fields(self):
        with self.assertRaises(ValueError):
            TextMatch("tags", "x")
        with self.assertRaises(ValueError):
            Contains("name", "x")

    def test_str(self):
        node = And((Or((TextMatch("name", "tp"), Contains("tags", "tp"))), MatchAll()))
        self.assertEqual(str(node), "AND(OR(name~tp, tags CONTAINS tp), ALL)")

    def test_nodes_are_hashable(self):
        self.assertEqual(len({Contains("tags", "a"), Contains("tags", "a")}), 1)


class TestMatches(unittest.TestCase):
    """Test evaluation against a serialized record."""

    def setUp(self):
        self.document = SAMPLE_PACKAGE_RECORD

    def test_match_all(self):
        self.assertTrue(matches(MatchAll(), self.document))

    def test_text_match_is_case_insensitive_substring(self):
        self.assertTrue(matches(TextMatch("name", "LEPO"), self.document))
        self.assertTrue(matches(TextMatch("description", "between"), self.document))
        self.assertFalse(matches(TextMatch("author", "nobody"), self.document))

    def test_contains_is_exact(self):
        self.assertTrue(matches(Contains("tags", "type:mod"), self.document))
        self.assertFalse(matches(Contains("tags", "type"), self.document))
        self.assertFalse(matches(Contains("tags", "Type:Mod"), self.document))

    def test_contains_over_versions(self):
        self.assertTrue(matches(Contains("versions.version", "1.3.0"), self.document))
        self.assertTrue(matches(Contains("versions.platformVersionRequirement", ">=1.1.0"), self.document))
        self.assertFalse(matches(Contains("versions.source", "pypi"), self.document))

    def test_empty_groups(self):
        self.assertTrue(matches(And(()), self.document))
        self.assertFalse(matches(Or(()), self.document))

    def test_composition(self):
        node = And((
            Contains("tags", "platform:levilamina"),
            Or((TextMatch("name", "nothing"), Contains("tags", "utility"))),
        ))
        self.assertTrue(matches(node, self.document))

    def test_unknown_node(self):
        with self.assertRaises(TypeError):
            matches("tags", self.document)


class TestFieldValues(unittest.TestCase):

    def test_versions_skip_missing_attribute(self):
        document = {"versions": [{"version": "1", "platformVersionRequirement": "x"}, {"version": "2"}]}

        self.assertEqual(field_values(document, "versions.version"), ["1", "2"])
        self.assertEqual(field_values(document, "versions.platformVersionRequirement"), ["x"])

    def test_unknown_field(self):
        with self.assertRaises(ValueError):
            field_values({}, "name")


if __name__ == "__main__":
    unittest.main()
