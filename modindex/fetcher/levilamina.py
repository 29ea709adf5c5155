"""
LeviLamina source adapter.

LeviLamina mods are GitHub repositories with a ``tooth.json`` manifest that
depends on LeviLamina. Versions are the tags the Go module proxy knows for the
repository; the platform requirement of each is read from the manifest at that
tag when there is one.
"""

import logging
import re
from typing import Iterator, Optional

from modindex.core.exceptions import FetchError
from modindex.core.interfaces import RepositoryDescriptor
from modindex.core.models import RawPackage, VersionRecord
from modindex.fetcher.base import SourceAdapter
from modindex.fetcher.github import (
    GitHubClient, contributors_from, default_avatar_url, project_url, raw_url
)
from modindex.fetcher.goproxy import GoProxyClient
from modindex.manifest.migrator import load_manifest


logger = logging.getLogger(__name__)

LEVILAMINA_TOOTH = "github.com/LiteLDev/LeviLamina"

SEARCH_QUERY = (
    'path:/+filename:tooth.json+"format_version"+2+"tooth"+"version"+"info"'
    '+"name"+"description"+"author"+"tags"+"github.com/LiteLDev/LeviLamina"'
)

ABSOLUTE_URL_PATTERN = re.compile(r"^(?:[a-z+]+:)?//", re.IGNORECASE)


def clean_version(tag: str) -> str:
    """Strip the ``v`` prefix and any ``+incompatible`` marker from a release tag."""
    return re.sub(r"^v", "", tag).replace("+incompatible", "")


def resolve_avatar_url(owner: str, repo: str, avatar_url: str) -> str:
    """
    Resolve the avatar of a package.

    A missing avatar falls back to the owner's GitHub avatar; a relative path is
    resolved against the repository content at HEAD.
    """
    if not avatar_url:
        return default_avatar_url(owner)
    if ABSOLUTE_URL_PATTERN.match(avatar_url):
        return avatar_url
    return raw_url(owner, repo, "HEAD", avatar_url)


class LeviLaminaAdapter(SourceAdapter):
    """Adapter for LeviLamina mods distributed through lip."""

    name = "levilamina"
    source = "github"
    package_manager = "lip"

    def __init__(
        self,
        config=None,
        http=None,
        cancel_event=None,
        github: Optional[GitHubClient] = None,
        goproxy: Optional[GoProxyClient] = None
    ):
        super().__init__(config, http, cancel_event)
        self.github = github or GitHubClient(self.http, self.config.github_token)
        self.goproxy = goproxy or GoProxyClient(self.http)

    def discover(self) -> Iterator[RepositoryDescriptor]:
        for descriptor in self._unique(self.github.search_code(SEARCH_QUERY, self.cancel_event)):
            # LeviLamina itself also ships a tooth.json
            if descriptor.owner == "LiteLDev" and descriptor.repo == "LeviLamina":
                continue
            yield descriptor

    def fetch_facts(self, descriptor: RepositoryDescriptor) -> Optional[RawPackage]:
        owner, repo = descriptor.owner, descriptor.repo
        logger.debug(f"Fetching LeviLamina package {descriptor.slug}")

        facts = self._gather({
            "repository": lambda: self.github.get_repository(owner, repo),
            "contributors": lambda: self.github.list_contributors(owner, repo),
            "tags": lambda: self.goproxy.list_versions(owner, repo),
            "manifest": lambda: self.github.fetch_raw_file(owner, repo, "HEAD", "tooth.json"),
            "xmake": lambda: self.github.fetch_raw_file(owner, repo, "HEAD", "xmake.lua"),
        })

        if facts["manifest"] is None:
            logger.debug(f"No tooth.json at HEAD of {descriptor.slug}, skipping")
            return None

        manifest = load_manifest(facts["manifest"])
        repository = facts["repository"]

        versions = self._resolve_versions(
            descriptor.slug,
            facts["tags"],
            lambda tag: self._resolve_version(owner, repo, tag),
        )
        if not versions:
            logger.info(f"No resolvable versions for {descriptor.slug}, skipping")
            return None

        tags = ["platform:levilamina"]
        if facts["xmake"] is not None:
            tags.append("type:mod")
        tags.extend(manifest.tags)
        tags.extend(repository.get("topics") or [])

        return RawPackage(
            identifier=f"{owner}/{repo}",
            name=manifest.name,
            source=self.source,
            description=manifest.description,
            author=owner,
            tags=tags,
            avatar_url=resolve_avatar_url(owner, repo, manifest.avatar_url),
            project_url=project_url(owner, repo),
            hotness=repository.get("stargazers_count") or 0,
            contributors=contributors_from(facts["contributors"]),
            versions=versions,
            package_manager=self.package_manager,
        )

    def _resolve_version(self, owner: str, repo: str, tag: str) -> VersionRecord:
        info = self.goproxy.get_version_info(owner, repo, tag)
        if not isinstance(info, dict):
            raise FetchError(f"module proxy has no info for {tag}")

        # A tooth.json at the tag only adds the platform requirement
        requirement = ""
        text = self.github.fetch_raw_file(owner, repo, tag.replace("+incompatible", ""), "tooth.json")
        if text is not None:
            requirement = load_manifest(text).dependencies.get(LEVILAMINA_TOOTH, "")

        return VersionRecord(
            version=clean_version(info.get("Version") or tag),
            released_at=info["Time"],
            source=self.source,
            package_manager=self.package_manager,
            platform_version_requirement=requirement,
        )
