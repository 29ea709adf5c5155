"""
Endstone Python plugin source adapter.

Python plugins are GitHub repositories whose ``pyproject.toml`` declares an
``endstone`` entry point. Versions are collected from GitHub releases and,
when the project is also published there, from PyPI.
"""

import logging
import re
import tomllib
from typing import Any, Dict, Iterable, Iterator, List, Optional

from modindex.core.exceptions import FetchError, MalformedManifestError
from modindex.core.interfaces import RepositoryDescriptor
from modindex.core.models import RawPackage, VersionRecord
from modindex.fetcher.base import SourceAdapter
from modindex.fetcher.github import (
    GitHubClient, contributors_from, default_avatar_url, project_url, release_timestamp
)
from modindex.fetcher.pypi import PyPIClient, released_files


logger = logging.getLogger(__name__)

SEARCH_QUERY = 'path:/+filename:pyproject.toml+[project.entry-points."endstone"]'

ENDSTONE_REQUIREMENT_PATTERN = re.compile(r"^endstone(?![A-Za-z0-9._-])")


def parse_pyproject(text: str) -> Dict[str, Any]:
    """
    Return the ``[project]`` table of a pyproject.toml.

    Raises:
        MalformedManifestError: If the TOML is invalid or the project has no name.
    """
    try:
        document = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise MalformedManifestError(f"invalid pyproject.toml: {e}") from e

    project = document.get("project")
    if not isinstance(project, dict) or not isinstance(project.get("name"), str):
        raise MalformedManifestError("pyproject.toml has no [project] name")
    return project


def endstone_requirement(requirements: Iterable[str]) -> str:
    """
    The version specifier of the first ``endstone`` requirement.

    ``endstone>=0.5`` gives ``>=0.5``; a bare ``endstone`` or no requirement at
    all gives "".
    """
    for requirement in requirements:
        if ENDSTONE_REQUIREMENT_PATTERN.match(requirement):
            return requirement[len("endstone"):].strip()
    return ""


class EndstonePythonAdapter(SourceAdapter):
    """Adapter for Endstone plugins written in Python."""

    name = "endstone-python"
    source = "github"
    package_manager = "pip"

    def __init__(
        self,
        config=None,
        http=None,
        cancel_event=None,
        github: Optional[GitHubClient] = None,
        pypi: Optional[PyPIClient] = None
    ):
        super().__init__(config, http, cancel_event)
        self.github = github or GitHubClient(self.http, self.config.github_token)
        self.pypi = pypi or PyPIClient(self.http)

    def discover(self) -> Iterator[RepositoryDescriptor]:
        return self._unique(self.github.search_code(SEARCH_QUERY, self.cancel_event))

    def fetch_facts(self, descriptor: RepositoryDescriptor) -> Optional[RawPackage]:
        owner, repo = descriptor.owner, descriptor.repo
        logger.debug(f"Fetching Endstone Python package {descriptor.slug}")

        facts = self._gather({
            "repository": lambda: self.github.get_repository(owner, repo),
            "contributors": lambda: self.github.list_contributors(owner, repo),
            "releases": lambda: self.github.list_releases(owner, repo),
            "pyproject": lambda: self.github.fetch_raw_file(owner, repo, "HEAD", "pyproject.toml"),
        })

        if facts["pyproject"] is None:
            logger.debug(f"No pyproject.toml at HEAD of {descriptor.slug}, skipping")
            return None

        project = parse_pyproject(facts["pyproject"])
        repository = facts["repository"]

        versions = self._resolve_versions(
            descriptor.slug,
            facts["releases"],
            lambda release: self._resolve_github_version(owner, repo, release),
            describe=lambda release: release.get("tag_name", "?"),
        )
        versions.extend(self._pypi_versions(descriptor.slug, project["name"]))

        if not versions:
            logger.info(f"No resolvable versions for {descriptor.slug}, skipping")
            return None

        return RawPackage(
            identifier=f"{owner}/{repo}",
            name=project["name"],
            source=self.source,
            description=project.get("description") or "",
            author=(repository.get("owner") or {}).get("login") or owner,
            tags=[
                "platform:endstone",
                "type:mod",
                *(project.get("keywords") or []),
                *(repository.get("topics") or []),
            ],
            avatar_url=default_avatar_url(owner),
            project_url=project_url(owner, repo),
            hotness=repository.get("stargazers_count") or 0,
            contributors=contributors_from(facts["contributors"]),
            versions=versions,
            package_manager=self.package_manager,
        )

    def _resolve_github_version(self, owner: str, repo: str, release: Dict[str, Any]) -> Optional[VersionRecord]:
        tag = release["tag_name"]

        text = self.github.fetch_raw_file(owner, repo, tag, "pyproject.toml")
        if text is None:
            raise FetchError(f"no pyproject.toml at {tag}")

        project = parse_pyproject(text)

        return VersionRecord(
            version=tag,
            released_at=release_timestamp(release),
            source="github",
            package_manager=self.package_manager,
            platform_version_requirement=endstone_requirement(project.get("dependencies") or []),
        )

    def _pypi_versions(self, label: str, name: str) -> List[VersionRecord]:
        project = self.pypi.get_project(name)
        if project is None:
            logger.debug(f"{name} is not published on PyPI")
            return []

        published_name = (project.get("info") or {}).get("name") or name

        return self._resolve_versions(
            label,
            sorted(released_files(project)),
            lambda version: self._resolve_pypi_version(published_name, version),
            describe=lambda version: f"{version} (pypi)",
        )

    def _resolve_pypi_version(self, name: str, version: str) -> Optional[VersionRecord]:
        release = self.pypi.get_release(name, version)
        if release is None or not release.get("urls"):
            return None

        info = release.get("info") or {}

        return VersionRecord(
            version=version,
            released_at=release["urls"][0]["upload_time_iso_8601"],
            source="pypi",
            package_manager=self.package_manager,
            platform_version_requirement=endstone_requirement(info.get("requires_dist") or []),
        )
