"""
GitHub REST API client used by the GitHub-backed source adapters.
"""

import logging
import threading
from typing import Any, Dict, Iterator, List, Optional

from modindex.core.exceptions import DiscoveryError, FetchError
from modindex.core.interfaces import RepositoryDescriptor
from modindex.core.models import Contributor
from modindex.fetcher.base import HttpClient


logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.github.com"
RAW_BASE_URL = "https://raw.githubusercontent.com"
AVATAR_BASE_URL = "https://avatars.githubusercontent.com"


class GitHubClient:
    """
    Client for the GitHub endpoints the adapters need.

    Paginated endpoints follow the ``rel="next"`` link until it disappears.
    """

    def __init__(self, http: HttpClient, token: Optional[str] = None):
        self.http = http
        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    def search_code(
        self,
        query: str,
        cancel_event: Optional[threading.Event] = None
    ) -> Iterator[RepositoryDescriptor]:
        """
        Search code and yield the repository of every hit.

        The query is sent verbatim, so ``+`` keeps its meaning as a term
        separator. Pages are fetched one at a time as the iterator advances.

        Args:
            query: GitHub code search query.
            cancel_event: Stops the search at the next page boundary when set.

        Raises:
            DiscoveryError: If a search page cannot be fetched.
        """
        url: Optional[str] = f"{API_BASE_URL}/search/code?q={query}&per_page=100"
        page = 1

        while url:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Code search stopped at page {page}: shutdown requested")
                return

            logger.debug(f"Searching code (page {page})")
            try:
                response = self.http.get(url, headers=self.headers)
                data = response.json()
            except (FetchError, ValueError) as e:
                raise DiscoveryError(f"code search failed on page {page}: {e}") from e

            for item in data.get("items") or []:
                repository = item.get("repository") or {}
                owner = (repository.get("owner") or {}).get("login")
                name = repository.get("name")
                if owner and name:
                    yield RepositoryDescriptor(owner=owner, repo=name)

            url = _next_link(response)
            page += 1

    def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        return self.http.get_json(f"{API_BASE_URL}/repos/{owner}/{repo}", headers=self.headers)

    def list_contributors(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        return self._paginate(f"{API_BASE_URL}/repos/{owner}/{repo}/contributors?per_page=100")

    def list_releases(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        return self._paginate(f"{API_BASE_URL}/repos/{owner}/{repo}/releases?per_page=100")

    def fetch_raw_file(self, owner: str, repo: str, ref: str, path: str) -> Optional[str]:
        """
        Fetch a file's content at a ref.

        Returns:
            The file text, or None if it does not exist at that ref.
        """
        return self.http.get_optional_text(raw_url(owner, repo, ref, path))

    def _paginate(self, url: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        next_url: Optional[str] = url

        while next_url:
            response = self.http.get(next_url, headers=self.headers)
            # Repositories without commits answer 204 with no body
            if response.status_code == 204:
                break
            try:
                items.extend(response.json())
            except ValueError as e:
                raise FetchError(f"invalid JSON from {next_url}: {e}") from e
            next_url = _next_link(response)

        return items


def _next_link(response) -> Optional[str]:
    links = getattr(response, "links", None) or {}
    return (links.get("next") or {}).get("url")


def raw_url(owner: str, repo: str, ref: str, path: str) -> str:
    return f"{RAW_BASE_URL}/{owner}/{repo}/{ref}/{path.lstrip('/')}"


def default_avatar_url(owner: str) -> str:
    return f"{AVATAR_BASE_URL}/{owner}"


def project_url(owner: str, repo: str) -> str:
    return f"https://github.com/{owner}/{repo}"


def contributors_from(payload: List[Dict[str, Any]]) -> List[Contributor]:
    """Map the contributors endpoint payload; anonymous entries keep an empty username."""
    return [
        Contributor(username=entry.get("login") or "", contributions=int(entry.get("contributions") or 0))
        for entry in payload
    ]


def release_timestamp(release: Dict[str, Any]) -> str:
    """Release time of a GitHub release, falling back to its creation time."""
    return release.get("published_at") or release.get("created_at") or ""
