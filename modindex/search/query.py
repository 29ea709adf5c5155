"""
Compiler for the package search query language.

A query is a whitespace-separated list of terms. ``category:value`` terms are
grouped by category and only match tags; other terms match name, description,
author or tags. A ``+`` prefix makes a term required on its own; the remaining
terms of each group form one clause of which at least one must match.

The ``+`` is stripped before a term is classified, so ``+platform:endstone`` is
a required tag match on ``platform:endstone`` rather than a free-text term.

Examples:
    ``+alpha``                  records mentioning "alpha"
    ``platform:endstone``       records tagged platform:endstone
    ``type:mod type:addon``     records tagged with either type
    ``+alpha platform:endstone beta``
                                "alpha" and "beta" and the endstone platform
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List

from modindex.core.filters import And, Contains, FilterNode, MatchAll, Or, TextMatch, TEXT_FIELDS

logger = logging.getLogger(__name__)

CATEGORY_TERM_PATTERN = re.compile(r"^[a-z0-9-]+:[a-z0-9-]+$")
EXACT_MARKER = "+"
WILDCARD = "*"
MIN_TERM_LENGTH = 2

UNCATEGORIZED = ""


@dataclass(frozen=True)
class QueryTerm:
    """One classified query term."""
    value: str
    category: str = UNCATEGORIZED
    exact: bool = False


class QueryCompiler:
    """
    Compiles query strings into filter trees.

    The result is an AND of required clauses:

    * every exact uncategorized term: ``OR(name~t, description~t, author~t, tags CONTAINS t)``
    * every exact category term: ``OR(tags CONTAINS t)``
    * per group, the optional terms: one ``OR`` over the clauses above

    An empty query matches everything. Duplicate terms produce duplicate
    clauses. A lone ``+`` is an exact term with an empty value, which matches
    every record since every text contains the empty string.
    """

    def tokenize(self, query: str) -> List[str]:
        """Split a query into terms, dropping terms too short to search."""
        tokens = query.replace(WILDCARD, " ").split()
        return [
            token for token in tokens
            if len(token) >= MIN_TERM_LENGTH or token == EXACT_MARKER
        ]

    def classify(self, token: str) -> QueryTerm:
        exact = token.startswith(EXACT_MARKER)
        value = token[len(EXACT_MARKER):] if exact else token
        category = value.split(":", 1)[0] if CATEGORY_TERM_PATTERN.match(value) else UNCATEGORIZED
        return QueryTerm(value=value, category=category, exact=exact)

    def term_clauses(self, term: QueryTerm) -> List[FilterNode]:
        """The alternatives that satisfy a single term."""
        if term.category != UNCATEGORIZED:
            return [Contains("tags", term.value)]
        return [TextMatch(field, term.value) for field in TEXT_FIELDS] + [Contains("tags", term.value)]

    def compile(self, query: str) -> FilterNode:
        """
        Compile a query string.

        Args:
            query: Query in the search language. May be empty.

        Returns:
            The filter tree.
        """
        groups: Dict[str, List[QueryTerm]] = {}
        for token in self.tokenize(query or ""):
            term = self.classify(token)
            groups.setdefault(term.category, []).append(term)

        required: List[FilterNode] = []
        for terms in groups.values():
            for term in terms:
                if term.exact:
                    required.append(Or(tuple(self.term_clauses(term))))

            optional: List[FilterNode] = []
            for term in terms:
                if not term.exact:
                    optional.extend(self.term_clauses(term))
            if optional:
                required.append(Or(tuple(optional)))

        if not required:
            return MatchAll()

        node = And(tuple(required))
        logger.debug(f"Compiled query {query!r} to {node}")
        return node


_default_compiler = QueryCompiler()


def compile_query(query: str) -> FilterNode:
    """Compile a query string with the default compiler."""
    return _default_compiler.compile(query)
