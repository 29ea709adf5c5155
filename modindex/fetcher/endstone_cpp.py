"""
Endstone C++ plugin source adapter.

C++ plugins are found through their ``CMakeLists.txt`` calling
``endstone_add_plugin``. The Endstone version a release builds against is the
``GIT_TAG`` of its ``FetchContent_Declare(endstone ...)`` block.
"""

import logging
import re
from typing import Any, Dict, Iterator, Optional

from modindex.core.exceptions import FetchError
from modindex.core.interfaces import RepositoryDescriptor
from modindex.core.models import RawPackage, VersionRecord
from modindex.fetcher.base import SourceAdapter
from modindex.fetcher.github import (
    GitHubClient, contributors_from, default_avatar_url, project_url, release_timestamp
)


logger = logging.getLogger(__name__)

SEARCH_QUERY = "path:/+filename:CMakeLists.txt+endstone_add_plugin"

FETCH_CONTENT_PATTERN = re.compile(
    r"FetchContent_Declare\(\s+endstone\s+"
    r"GIT_REPOSITORY\s+https://github\.com/EndstoneMC/endstone\.git\s+"
    r"GIT_TAG\s+(\S+)\s+\)",
    re.MULTILINE,
)


def endstone_git_tag(cmake_lists: str) -> str:
    """The Endstone ``GIT_TAG`` declared in a CMakeLists.txt, or "" if none."""
    match = FETCH_CONTENT_PATTERN.search(cmake_lists)
    return match.group(1) if match else ""


class EndstoneCppAdapter(SourceAdapter):
    """Adapter for Endstone plugins written in C++."""

    name = "endstone-cpp"
    source = "github"
    package_manager = ""

    def __init__(self, config=None, http=None, cancel_event=None, github: Optional[GitHubClient] = None):
        super().__init__(config, http, cancel_event)
        self.github = github or GitHubClient(self.http, self.config.github_token)

    def discover(self) -> Iterator[RepositoryDescriptor]:
        return self._unique(self.github.search_code(SEARCH_QUERY, self.cancel_event))

    def fetch_facts(self, descriptor: RepositoryDescriptor) -> Optional[RawPackage]:
        owner, repo = descriptor.owner, descriptor.repo
        logger.debug(f"Fetching Endstone C++ package {descriptor.slug}")

        facts = self._gather({
            "repository": lambda: self.github.get_repository(owner, repo),
            "contributors": lambda: self.github.list_contributors(owner, repo),
            "releases": lambda: self.github.list_releases(owner, repo),
        })

        versions = self._resolve_versions(
            descriptor.slug,
            facts["releases"],
            lambda release: self._resolve_version(owner, repo, release),
            describe=lambda release: release.get("tag_name", "?"),
        )
        if not versions:
            logger.info(f"No resolvable versions for {descriptor.slug}, skipping")
            return None

        repository = facts["repository"]

        return RawPackage(
            identifier=f"{owner}/{repo}",
            name=repository.get("name") or repo,
            source=self.source,
            description=repository.get("description") or "",
            author=(repository.get("owner") or {}).get("login") or owner,
            tags=["platform:endstone", "type:mod", *(repository.get("topics") or [])],
            avatar_url=default_avatar_url(owner),
            project_url=project_url(owner, repo),
            hotness=repository.get("stargazers_count") or 0,
            contributors=contributors_from(facts["contributors"]),
            versions=versions,
            package_manager=self.package_manager,
        )

    def _resolve_version(self, owner: str, repo: str, release: Dict[str, Any]) -> VersionRecord:
        tag = release["tag_name"]

        cmake_lists = self.github.fetch_raw_file(owner, repo, tag, "CMakeLists.txt")
        if cmake_lists is None:
            raise FetchError(f"no CMakeLists.txt at {tag}")

        return VersionRecord(
            version=tag,
            released_at=release_timestamp(release),
            source=self.source,
            package_manager=self.package_manager,
            platform_version_requirement=endstone_git_tag(cmake_lists),
        )
