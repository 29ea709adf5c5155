"""
Backend-agnostic filter tree for package queries.

The query compiler produces these nodes; each store backend evaluates or
translates them. ``TextMatch`` is a case-insensitive substring match over a
text field, ``Contains`` is an exact element match over an array field.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

TEXT_FIELDS = ("name", "description", "author")

ARRAY_FIELDS = (
    "tags",
    "versions.version",
    "versions.releasedAt",
    "versions.source",
    "versions.packageManager",
    "versions.platformVersionRequirement",
)


@dataclass(frozen=True)
class MatchAll:
    """Matches every record."""

    def __str__(self) -> str:
        return "ALL"


@dataclass(frozen=True)
class TextMatch:
    """Substring match of ``term`` within a text field."""
    field: str
    term: str

    def __post_init__(self):
        if self.field not in TEXT_FIELDS:
            raise ValueError(f"not a text field: {self.field}")

    def __str__(self) -> str:
        return f"{self.field}~{self.term}"


@dataclass(frozen=True)
class Contains:
    """Exact match of ``value`` against any element of an array field."""
    field: str
    value: str

    def __post_init__(self):
        if self.field not in ARRAY_FIELDS:
            raise ValueError(f"not an array field: {self.field}")

    def __str__(self) -> str:
        return f"{self.field} CONTAINS {self.value}"


@dataclass(frozen=True)
class And:
    children: Tuple["FilterNode", ...]

    def __str__(self) -> str:
        return f"AND({', '.join(str(c) for c in self.children)})"


@dataclass(frozen=True)
class Or:
    children: Tuple["FilterNode", ...]

    def __str__(self) -> str:
        return f"OR({', '.join(str(c) for c in self.children)})"


FilterNode = Union[MatchAll, TextMatch, Contains, And, Or]


def field_values(document: Dict[str, Any], field: str) -> List[str]:
    """
    Project an array field out of a serialized record.

    ``versions.<name>`` fields collect that attribute over all versions,
    skipping versions that do not carry it.
    """
    if field == "tags":
        return list(document.get("tags") or [])

    if field.startswith("versions."):
        attribute = field.split(".", 1)[1]
        return [
            version[attribute]
            for version in document.get("versions") or []
            if version.get(attribute) is not None
        ]

    raise ValueError(f"not an array field: {field}")


def matches(node: FilterNode, document: Dict[str, Any]) -> bool:
    """
    Evaluate a filter tree against a serialized record.

    An empty ``And`` matches everything and an empty ``Or`` matches nothing.
    """
    if isinstance(node, MatchAll):
        return True

    if isinstance(node, TextMatch):
        value = document.get(node.field) or ""
        return node.term.lower() in str(value).lower()

    if isinstance(node, Contains):
        return node.value in field_values(document, node.field)

    if isinstance(node, And):
        return all(matches(child, document) for child in node.children)

    if isinstance(node, Or):
        return any(matches(child, document) for child in node.children)

    raise TypeError(f"unknown filter node: {node!r}")
