"""
Search execution over the package index.

``SearchExecutor`` runs a compiled filter against the index and paginates the
result. ``PackageSearchService`` is the request-level API: it validates raw
request parameters, compiles the query and shapes the response document.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from modindex.core.exceptions import PackageNotFoundError, ValidationError
from modindex.core.filters import FilterNode
from modindex.core.models import PackageRecord
from modindex.core.store import SORT_KEYS, SORT_ORDERS, PackageIndex
from modindex.search.query import QueryCompiler


logger = logging.getLogger(__name__)

API_VERSION = "2.0.0"

DEFAULT_PER_PAGE = 10
MAX_PER_PAGE = 100


@dataclass
class SearchResult:
    """One page of search results."""
    items: List[PackageRecord] = field(default_factory=list)
    total_pages: int = 0
    page_index: int = 1
    total: int = 0


class SearchExecutor:
    """
    Applies compiled filters to the index and returns sorted result pages.

    Order among records with equal sort values is unspecified.
    """

    def __init__(self, index: PackageIndex):
        self.index = index

    def execute(
        self,
        node: FilterNode,
        sort: str = "hotness",
        order: str = "desc",
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE
    ) -> SearchResult:
        """
        Execute a filter and return one page.

        Args:
            node: Compiled filter tree.
            sort: Sort key, ``hotness`` or ``updated``.
            order: Sort order, ``asc`` or ``desc``.
            page: 1-based page number.
            per_page: Page size between 1 and 100.

        Returns:
            SearchResult whose ``total_pages`` is ``ceil(total / per_page)``.
            A page past the end has no items.

        Raises:
            ValidationError: If a parameter is out of range.
        """
        if sort not in SORT_KEYS:
            raise ValidationError("invalid sort")
        if order not in SORT_ORDERS:
            raise ValidationError("invalid order")
        if not _is_int(page) or page < 1:
            raise ValidationError("invalid page")
        if not _is_int(per_page) or not 1 <= per_page <= MAX_PER_PAGE:
            raise ValidationError("invalid perPage")

        result = self.index.query(
            node,
            sort_key=sort,
            sort_order=order,
            offset=(page - 1) * per_page,
            limit=per_page,
        )

        return SearchResult(
            items=result.records,
            total_pages=math.ceil(result.total / per_page),
            page_index=page,
            total=result.total,
        )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_int(value: Union[str, int], name: str) -> int:
    if _is_int(value):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"invalid {name}") from None


class PackageSearchService:
    """
    Search API over the package index.

    Responses use the shape ``{"apiVersion": ..., "data": ...}``.
    """

    def __init__(self, index: PackageIndex, compiler: Optional[QueryCompiler] = None):
        self.index = index
        self.compiler = compiler or QueryCompiler()
        self.executor = SearchExecutor(index)

    def search(
        self,
        q: str = "",
        per_page: Union[str, int] = str(DEFAULT_PER_PAGE),
        page: Union[str, int] = "1",
        sort: str = "hotness",
        order: str = "desc"
    ) -> Dict[str, Any]:
        """
        Search packages.

        Args:
            q: Query in the search language.
            per_page: Page size, 1 to 100.
            page: 1-based page number.
            sort: ``hotness`` or ``updated``.
            order: ``asc`` or ``desc``.

        Returns:
            ``{"apiVersion", "data": {"pageIndex", "totalPages", "items"}}``.

        Raises:
            ValidationError: With message ``invalid <param>`` for a bad parameter.
            StoreError: If the index backend fails.
        """
        per_page_value = _parse_int(per_page, "perPage")
        page_value = _parse_int(page, "page")

        node = self.compiler.compile(str(q or ""))
        result = self.executor.execute(node, sort, order, page_value, per_page_value)

        logger.debug(
            f"Search {q!r} page {page_value}/{result.total_pages} returned {len(result.items)} items"
        )

        return {
            "apiVersion": API_VERSION,
            "data": {
                "pageIndex": result.page_index,
                "totalPages": result.total_pages,
                "items": [record.summary() for record in result.items],
            },
        }

    def get_package(self, key: str) -> Dict[str, Any]:
        """
        Fetch one package by its ``{source}:{identifier}`` key.

        Raises:
            PackageNotFoundError: If the key is absent or expired.
        """
        record = self.index.fetch(key)
        if record is None:
            raise PackageNotFoundError(f"package not found: {key}")

        return {
            "apiVersion": API_VERSION,
            "data": record.to_dict(),
        }
