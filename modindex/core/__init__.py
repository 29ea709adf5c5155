"""Core components for modindex."""

from .configuration import ConfigurationManager, load_config
from .engine import IngestionEngine, IngestionScheduler
from .interfaces import (
    CycleReport,
    EcosystemReport,
    FetcherConfig,
    IndexerConfig,
    RepositoryDescriptor,
    ValidationIssue,
    ValidationLevel,
    ValidationResult,
)
from .models import Contributor, PackageRecord, RawPackage, VersionRecord
from .normalizer import Normalizer
from .store import PackageIndex, StoreBackend, StoreConfig, create_package_index
from .exceptions import (
    ModIndexError,
    DiscoveryError,
    FetchError,
    ManifestError,
    UnsupportedFormatError,
    MalformedManifestError,
    EmptyVersionSetError,
    ValidationError,
    StoreError,
    PackageNotFoundError,
    ConfigurationError,
    CancelledError,
)

__all__ = [
    "ConfigurationManager",
    "load_config",
    "IngestionEngine",
    "IngestionScheduler",
    "CycleReport",
    "EcosystemReport",
    "FetcherConfig",
    "IndexerConfig",
    "RepositoryDescriptor",
    "ValidationIssue",
    "ValidationLevel",
    "ValidationResult",
    "Contributor",
    "PackageRecord",
    "RawPackage",
    "VersionRecord",
    "Normalizer",
    "PackageIndex",
    "StoreBackend",
    "StoreConfig",
    "create_package_index",
    "ModIndexError",
    "DiscoveryError",
    "FetchError",
    "ManifestError",
    "UnsupportedFormatError",
    "MalformedManifestError",
    "EmptyVersionSetError",
    "ValidationError",
    "StoreError",
    "PackageNotFoundError",
    "ConfigurationError",
    "CancelledError",
]
