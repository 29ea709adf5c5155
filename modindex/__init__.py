"""
modindex - A package index for Minecraft Bedrock server mods and plugins.

This package discovers packages across several ecosystems, normalizes their
metadata into one canonical record, keeps them in a searchable index with
TTL-based expiry and answers search queries over that index.
"""

__version__ = "0.1.0"

from .core.engine import IngestionEngine
from .core.exceptions import ModIndexError, ValidationError, FetchError, StoreError
from .search.engine import PackageSearchService

__all__ = [
    "IngestionEngine",
    "PackageSearchService",
    "ModIndexError",
    "ValidationError",
    "FetchError",
    "StoreError",
]
