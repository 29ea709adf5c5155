"""
Core interfaces for modindex.

This module contains the configuration objects, descriptors and result types
shared by the ingestion and search components.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


DEFAULT_SOURCE_PRECEDENCE = ("github", "pypi")


@dataclass
class FetcherConfig:
    """
    Configuration for HTTP fetching.
    """
    request_timeout: int = 30
    retry_count: int = 3
    concurrent_requests: int = 5
    github_token: Optional[str] = None
    user_agent: str = "modindex"


@dataclass
class IndexerConfig:
    """
    Configuration for the indexer process.
    """
    store_backend: str = "sqlite"
    database_path: str = "~/.modindex/index.db"
    expiration: int = 60 * 60
    fetch_interval: int = 60 * 30
    cleanup_interval: int = 60
    github_token: Optional[str] = None
    concurrent_requests: int = 5
    request_timeout: int = 30
    retry_count: int = 3
    ecosystems: List[str] = field(default_factory=list)
    tag_replacements: Dict[str, str] = field(default_factory=dict)
    source_precedence: List[str] = field(default_factory=lambda: list(DEFAULT_SOURCE_PRECEDENCE))

    def fetcher_config(self) -> FetcherConfig:
        """Build the HTTP fetcher configuration from this indexer configuration."""
        return FetcherConfig(
            request_timeout=self.request_timeout,
            retry_count=self.retry_count,
            concurrent_requests=self.concurrent_requests,
            github_token=self.github_token,
        )


@dataclass(frozen=True)
class RepositoryDescriptor:
    """
    A repository or registry package produced by discovery.
    """
    owner: str = ""
    repo: str = ""
    name: Optional[str] = None

    @property
    def slug(self) -> str:
        """Human-readable identity used in logs."""
        if self.name is not None:
            return self.name
        return f"{self.owner}/{self.repo}"


class ValidationLevel(Enum):
    """
    Validation level.
    """
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ValidationIssue:
    """
    Validation issue.
    """
    level: ValidationLevel
    message: str
    path: str
    schema_path: Optional[str] = None


@dataclass
class ValidationResult:
    """
    Result of validation.
    """
    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.level == ValidationLevel.ERROR]


@dataclass
class EcosystemReport:
    """
    Outcome of one ecosystem's pass within a crawl cycle.
    """
    ecosystem: str
    discovered: int = 0
    published: int = 0
    withheld: int = 0
    failed: int = 0
    discovery_error: Optional[str] = None
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class CycleReport:
    """
    Outcome of a full crawl cycle.
    """
    ecosystems: Dict[str, EcosystemReport] = field(default_factory=dict)
    started_at: float = 0.0
    finished_at: float = 0.0
    cancelled: bool = False

    @property
    def elapsed(self) -> float:
        return max(0.0, self.finished_at - self.started_at)

    @property
    def summary(self) -> Dict[str, int]:
        """Totals across all ecosystems."""
        totals = {"discovered": 0, "published": 0, "withheld": 0, "failed": 0}
        for report in self.ecosystems.values():
            totals["discovered"] += report.discovered
            totals["published"] += report.published
            totals["withheld"] += report.withheld
            totals["failed"] += report.failed
        return totals
