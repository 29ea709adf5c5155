"""
Package search.

This module provides the query language compiler and the search executor.
"""

from .engine import API_VERSION, PackageSearchService, SearchExecutor, SearchResult
from .query import QueryCompiler, QueryTerm, compile_query

__all__ = [
    'API_VERSION',
    'PackageSearchService',
    'SearchExecutor',
    'SearchResult',
    'QueryCompiler',
    'QueryTerm',
    'compile_query',
]
