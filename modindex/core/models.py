"""
Package data models for modindex with JSON and YAML serialization.

Records are serialized with the camelCase field names of the public search API,
so the persisted document and the API item share one shape.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml

T = TypeVar('T')


class Serializable(ABC):
    """Base for dict/JSON/YAML serialization. Subclasses implement ``from_dict``."""

    _wire_names: Dict[str, str] = {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the instance to a dictionary using wire field names.

        Returns:
            Dictionary representation
        """
        data = asdict(self)
        return _rename(data, self._wire_names)

    @classmethod
    @abstractmethod
    def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
        pass

    def to_json(self) -> str:
        """
        Convert the instance to a deterministic JSON string.

        Equal records always produce byte-identical output.
        """
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)

    @classmethod
    def from_json(cls: Type[T], json_str: str) -> T:
        return cls.from_dict(json.loads(json_str))


def _rename(data: Dict[str, Any], wire_names: Dict[str, str]) -> Dict[str, Any]:
    return {wire_names.get(key, key): value for key, value in data.items()}


@dataclass
class Contributor(Serializable):
    """
    A contributor to a package's source repository.
    """
    username: str
    contributions: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contributor":
        return cls(
            username=data.get("username") or "",
            contributions=int(data.get("contributions") or 0),
        )


@dataclass
class VersionRecord(Serializable):
    """
    One released version of a package.
    """
    version: str
    released_at: str
    source: str = ""
    package_manager: str = ""
    platform_version_requirement: Optional[str] = None

    _wire_names = {
        "released_at": "releasedAt",
        "package_manager": "packageManager",
        "platform_version_requirement": "platformVersionRequirement",
    }

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if data["platformVersionRequirement"] is None:
            del data["platformVersionRequirement"]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VersionRecord":
        return cls(
            version=str(data["version"]),
            released_at=str(data.get("releasedAt", data.get("released_at", ""))),
            source=data.get("source") or "",
            package_manager=data.get("packageManager", data.get("package_manager")) or "",
            platform_version_requirement=data.get(
                "platformVersionRequirement", data.get("platform_version_requirement")
            ),
        )


@dataclass
class PackageRecord(Serializable):
    """
    Canonical, normalized record of one package.

    Invariants (established by the normalizer): tags and versions are
    deduplicated, versions are sorted by release time descending, and
    ``updated`` equals the release time of ``versions[0]``.
    """
    identifier: str
    name: str
    description: str = ""
    author: str = ""
    tags: List[str] = field(default_factory=list)
    avatar_url: str = ""
    project_url: str = ""
    hotness: float = 0
    updated: str = ""
    contributors: List[Contributor] = field(default_factory=list)
    versions: List[VersionRecord] = field(default_factory=list)
    source: str = ""
    package_manager: str = ""

    _wire_names = {
        "avatar_url": "avatarUrl",
        "project_url": "projectUrl",
        "package_manager": "packageManager",
    }

    @property
    def key(self) -> str:
        """Globally unique store key, ``{source}:{identifier}``."""
        return f"{self.source}:{self.identifier}"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["contributors"] = [c.to_dict() for c in self.contributors]
        data["versions"] = [v.to_dict() for v in self.versions]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackageRecord":
        return cls(
            identifier=data["identifier"],
            name=data.get("name") or "",
            description=data.get("description") or "",
            author=data.get("author") or "",
            tags=list(data.get("tags") or []),
            avatar_url=data.get("avatarUrl", data.get("avatar_url")) or "",
            project_url=data.get("projectUrl", data.get("project_url")) or "",
            hotness=data.get("hotness") or 0,
            updated=data.get("updated") or "",
            contributors=[Contributor.from_dict(c) for c in data.get("contributors") or []],
            versions=[VersionRecord.from_dict(v) for v in data.get("versions") or []],
            source=data.get("source") or "",
            package_manager=data.get("packageManager", data.get("package_manager")) or "",
        )

    def summary(self) -> Dict[str, Any]:
        """Projection used for search result items."""
        data = self.to_dict()
        data["key"] = self.key
        return data


@dataclass
class RawPackage:
    """
    Unnormalized facts about one package, as assembled by a source adapter.

    Versions may come from several sources and contain duplicates; tags and
    contributors are raw. ``updated`` is derived by the normalizer.
    """
    identifier: str
    name: str
    source: str
    description: str = ""
    author: str = ""
    tags: List[str] = field(default_factory=list)
    avatar_url: str = ""
    project_url: str = ""
    hotness: float = 0
    contributors: List[Contributor] = field(default_factory=list)
    versions: List[VersionRecord] = field(default_factory=list)
    package_manager: str = ""

    @property
    def key(self) -> str:
        return f"{self.source}:{self.identifier}"

    @classmethod
    def from_record(cls, record: PackageRecord) -> "RawPackage":
        """Turn a normalized record back into raw input (used for re-normalization)."""
        return cls(
            identifier=record.identifier,
            name=record.name,
            source=record.source,
            description=record.description,
            author=record.author,
            tags=list(record.tags),
            avatar_url=record.avatar_url,
            project_url=record.project_url,
            hotness=record.hotness,
            contributors=[replace(c) for c in record.contributors],
            versions=[replace(v) for v in record.versions],
            package_manager=record.package_manager,
        )
