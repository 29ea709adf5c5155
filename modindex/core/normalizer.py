"""
Normalization of raw package facts into canonical records.

The normalizer is the only place where facts from several sources are merged.
It is deterministic and idempotent: normalizing its own output yields an equal
record, and equal inputs serialize to byte-identical JSON.
"""

import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence

from modindex.core.exceptions import EmptyVersionSetError
from modindex.core.interfaces import DEFAULT_SOURCE_PRECEDENCE
from modindex.core.models import Contributor, PackageRecord, RawPackage, VersionRecord


logger = logging.getLogger(__name__)

CATEGORY_TAG_PATTERN = re.compile(r"^[a-z0-9-]+:[a-z0-9-]+$")

DEFAULT_TAG_REPLACEMENTS: Mapping[str, str] = MappingProxyType({
    "endstone": "platform:endstone",
    "levilamina": "platform:levilamina",
    "mod": "type:mod",
    "plugin": "type:mod",
    "modpack": "type:modpack",
    "addon": "type:addon",
    "world": "type:world",
})


def is_category_tag(tag: str) -> bool:
    """Return True for ``category:value`` shaped tags."""
    return CATEGORY_TAG_PATTERN.match(tag) is not None


def normalize_timestamp(value: str) -> str:
    """
    Normalize a timestamp to ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC.

    Accepts ISO-8601 dates and date-times, with or without offset; naive values
    are taken as UTC.

    Raises:
        ValueError: If the value is not a recognizable timestamp.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"invalid timestamp: {value!r}")

    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)

    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


class Normalizer:
    """
    Merges and canonicalizes the facts of one package.

    Both the tag replacement table and the source precedence are explicit,
    read-only configuration supplied at construction time.
    """

    def __init__(
        self,
        tag_replacements: Optional[Mapping[str, str]] = None,
        source_precedence: Optional[Sequence[str]] = None
    ):
        """
        Initialize the normalizer.

        Args:
            tag_replacements: Mapping of raw tag to canonical tag. Defaults to
                DEFAULT_TAG_REPLACEMENTS.
            source_precedence: Order in which version sources are consulted when
                the same version string is reported more than once.
        """
        if tag_replacements is None:
            tag_replacements = DEFAULT_TAG_REPLACEMENTS
        self.tag_replacements: Mapping[str, str] = MappingProxyType(dict(tag_replacements))
        self.source_precedence = tuple(source_precedence or DEFAULT_SOURCE_PRECEDENCE)

    def normalize(self, raw: RawPackage) -> PackageRecord:
        """
        Produce the canonical record for a raw package.

        Args:
            raw: Facts assembled by a source adapter.

        Returns:
            The normalized PackageRecord.

        Raises:
            EmptyVersionSetError: If no version survives normalization.
        """
        versions = self.normalize_versions(raw.versions)
        if not versions:
            raise EmptyVersionSetError(f"no versions for {raw.key}")

        return PackageRecord(
            identifier=raw.identifier,
            name=raw.name,
            description=raw.description or "",
            author=raw.author or "",
            tags=self.normalize_tags(raw.tags),
            avatar_url=raw.avatar_url or "",
            project_url=raw.project_url or "",
            hotness=raw.hotness,
            updated=versions[0].released_at,
            contributors=self.normalize_contributors(raw.contributors),
            versions=versions,
            source=raw.source,
            package_manager=raw.package_manager or "",
        )

    def normalize_tags(self, tags: Iterable[str]) -> List[str]:
        """
        Replace, deduplicate and order tags.

        Category tags come first; each partition is sorted lexicographically.
        """
        canonical = set()
        for tag in tags:
            if tag is None:
                continue
            tag = str(tag).strip()
            if not tag:
                continue
            canonical.add(self.tag_replacements.get(tag, tag))

        return sorted(canonical, key=lambda tag: (not is_category_tag(tag), tag))

    def normalize_contributors(self, contributors: Iterable[Contributor]) -> List[Contributor]:
        """Drop anonymous contributors and order the rest by contribution count."""
        kept = [replace(c) for c in contributors if c.username]
        return sorted(kept, key=lambda c: c.contributions, reverse=True)

    def normalize_versions(self, versions: Iterable[VersionRecord]) -> List[VersionRecord]:
        """
        Union, deduplicate and order versions.

        Entries whose release time cannot be parsed are dropped first. The
        rest are consulted in source precedence order (stable within a
        source); the first entry seen for a version string wins.
        """
        valid: List[VersionRecord] = []
        for version in versions:
            try:
                released_at = normalize_timestamp(version.released_at)
            except ValueError:
                logger.warning(
                    f"Dropping version {version.version} from {version.source or 'unknown source'}: "
                    f"invalid release time {version.released_at!r}"
                )
                continue
            valid.append(replace(version, released_at=released_at))

        ordered = sorted(valid, key=lambda v: self._precedence_rank(v.source))

        seen = set()
        normalized: List[VersionRecord] = []
        for version in ordered:
            if version.version in seen:
                continue
            seen.add(version.version)
            normalized.append(version)

        # Canonical timestamps are fixed-width, so string order is time order.
        return sorted(normalized, key=lambda v: v.released_at, reverse=True)

    def _precedence_rank(self, source: str) -> int:
        try:
            return self.source_precedence.index(source)
        except ValueError:
            return len(self.source_precedence)
