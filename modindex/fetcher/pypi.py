"""
PyPI source adapter.

Discovers Endstone packages by scraping the PyPI search pages and builds their
records from the PyPI JSON API. Popularity comes from pypistats.
"""

import logging
import re
from typing import Any, Dict, Iterator, List, Optional

from modindex.core.exceptions import DiscoveryError, FetchError
from modindex.core.interfaces import RepositoryDescriptor
from modindex.core.models import RawPackage, VersionRecord
from modindex.fetcher.base import HttpClient, SourceAdapter


logger = logging.getLogger(__name__)

PYPI_BASE_URL = "https://pypi.org"
PYPISTATS_BASE_URL = "https://pypistats.org/api/packages"

SEARCH_TERM = "endstone"
PROJECT_NAME_PATTERN = re.compile(r'<span class="package-snippet__name">(endstone-.+?|endstone)</span>')

# Monthly downloads per hotness point
DOWNLOADS_PER_HOTNESS = 13


class PyPIClient:
    """Client for the PyPI JSON API, the PyPI search pages and pypistats."""

    def __init__(self, http: HttpClient):
        self.http = http
        self.headers = {"Accept": "application/json"}

    def get_project(self, name: str) -> Optional[Dict[str, Any]]:
        """Project document from ``/pypi/{name}/json``, or None if unknown."""
        return self.http.get_optional_json(f"{PYPI_BASE_URL}/pypi/{name}/json", headers=self.headers)

    def get_release(self, name: str, version: str) -> Optional[Dict[str, Any]]:
        """Release document from ``/pypi/{name}/{version}/json``, or None if unknown."""
        return self.http.get_optional_json(
            f"{PYPI_BASE_URL}/pypi/{name}/{version}/json", headers=self.headers
        )

    def search_page(self, query: str, page: int) -> Optional[str]:
        """HTML of one search result page, or None once past the last page."""
        return self.http.get_optional_text(f"{PYPI_BASE_URL}/search/?q={query}&page={page}")

    def monthly_downloads(self, name: str) -> Optional[int]:
        """Downloads in the last month, or None if pypistats has no data."""
        data = self.http.get_optional_json(f"{PYPISTATS_BASE_URL}/{name}/recent", headers=self.headers)
        if not data:
            return None
        return (data.get("data") or {}).get("last_month")


def released_files(project: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    """Releases of a project document that have at least one uploaded file."""
    releases = project.get("releases") or {}
    return {version: files for version, files in releases.items() if files}


class PyPIAdapter(SourceAdapter):
    """
    Adapter for Endstone packages published on PyPI.

    Only projects named ``endstone`` or ``endstone-*`` are indexed.
    """

    name = "pypi"
    source = "pypi"
    package_manager = "pip"

    def __init__(self, config=None, http=None, cancel_event=None, pypi: Optional[PyPIClient] = None):
        super().__init__(config, http, cancel_event)
        self.pypi = pypi or PyPIClient(self.http)

    def discover(self) -> Iterator[RepositoryDescriptor]:
        return self._unique(self._search())

    def _search(self) -> Iterator[RepositoryDescriptor]:
        page = 1

        while True:
            if self.cancelled:
                logger.info(f"PyPI search stopped at page {page}: shutdown requested")
                return

            logger.debug(f"Searching PyPI for {SEARCH_TERM!r} (page {page})")
            try:
                html = self.pypi.search_page(SEARCH_TERM, page)
            except FetchError as e:
                raise DiscoveryError(f"PyPI search failed on page {page}: {e}") from e

            if html is None:
                return

            names = PROJECT_NAME_PATTERN.findall(html)
            if not names:
                return

            for name in names:
                yield RepositoryDescriptor(name=name)

            page += 1

    def fetch_facts(self, descriptor: RepositoryDescriptor) -> Optional[RawPackage]:
        name = descriptor.name or descriptor.repo
        logger.debug(f"Fetching PyPI project {name}")

        facts = self._gather({
            "project": lambda: self.pypi.get_project(name),
            "downloads": lambda: self._monthly_downloads(name),
        })

        project = facts["project"]
        if project is None:
            logger.debug(f"PyPI project {name} does not exist, skipping")
            return None

        info = project.get("info") or {}
        releases = released_files(project)

        versions = self._resolve_versions(
            name,
            sorted(releases.items()),
            lambda item: VersionRecord(
                version=item[0],
                released_at=item[1][0]["upload_time_iso_8601"],
                source=self.source,
                package_manager=self.package_manager,
            ),
            describe=lambda item: item[0],
        )
        if not versions:
            logger.info(f"PyPI project {name} has no released files, skipping")
            return None

        keywords = info.get("keywords") or ""

        return RawPackage(
            identifier=name,
            name=info.get("name") or name,
            source=self.source,
            description=info.get("summary") or "",
            author=info.get("author") or info.get("author_email") or "Unknown",
            tags=["platform:endstone", *(keyword.strip() for keyword in keywords.split(","))],
            avatar_url="",
            project_url=info.get("project_url") or f"{PYPI_BASE_URL}/project/{name}/",
            hotness=round((facts["downloads"] or 0) / DOWNLOADS_PER_HOTNESS),
            versions=versions,
            package_manager=self.package_manager,
        )

    def _monthly_downloads(self, name: str) -> Optional[int]:
        try:
            return self.pypi.monthly_downloads(name)
        except FetchError as e:
            logger.warning(f"Download statistics unavailable for {name}: {e}")
            return None
