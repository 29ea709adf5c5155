"""
Exceptions for modindex.

This module contains the exception hierarchy for modindex operations.
"""

from typing import List, Optional


class ModIndexError(Exception):
    """Base exception for modindex operations."""
    pass


class DiscoveryError(ModIndexError):
    """Raised when an ecosystem's search backend fails during discovery."""
    pass


class FetchError(ModIndexError):
    """Raised when fetching a single fact or version fails."""
    pass


class ManifestError(ModIndexError):
    """Base class for manifest parsing and migration failures."""
    pass


class UnsupportedFormatError(ManifestError):
    """Raised when a manifest declares an unknown schema version."""
    pass


class MalformedManifestError(ManifestError):
    """Raised when a manifest does not match the schema of its declared version."""

    def __init__(self, message: str, issues: Optional[List] = None):
        super().__init__(message)
        self.issues = issues or []


class EmptyVersionSetError(ModIndexError):
    """Raised when a package has no resolvable versions after normalization."""
    pass


class ValidationError(ModIndexError):
    """Raised when a search parameter is out of range."""
    pass


class StoreError(ModIndexError):
    """Raised when the index backend is unreachable or fails."""
    pass


class PackageNotFoundError(ModIndexError):
    """Raised when a package key is not present in the index."""
    pass


class ConfigurationError(ModIndexError):
    """Raised when configuration is invalid."""
    pass


class CancelledError(ModIndexError):
    """Raised at a cancellation point once shutdown has been requested."""
    pass
