"""
tooth.json manifest parsing and format migration.

Manifests exist in three format versions. Each version is modelled as its own
immutable variant, and each edge of the migration chain (v1 to v2, v2 to v3)
is one pure function. ``migrate`` applies the edges until the canonical
version 3 is reached.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Mapping, Tuple, Union

from modindex.core.exceptions import MalformedManifestError, UnsupportedFormatError
from modindex.manifest.schema import SCHEMAS, validate_manifest

logger = logging.getLogger(__name__)

RANGE_GROUP_SEPARATOR = " || "


@dataclass(frozen=True)
class ManifestInfo:
    """Descriptive block shared by every manifest version."""
    name: str
    description: str = ""
    author: str = ""
    tags: Tuple[str, ...] = ()
    avatar_url: str = ""
    source: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ManifestInfo":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            author=data.get("author", ""),
            tags=tuple(data.get("tags") or ()),
            avatar_url=data.get("avatar_url", ""),
            source=data.get("source", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "author": self.author,
            "tags": list(self.tags),
            "avatar_url": self.avatar_url,
        }
        if self.source:
            data["source"] = self.source
        return data


@dataclass(frozen=True)
class ManifestV1:
    """Legacy manifest: ``information`` block and ranges as ``[lower, upper]`` groups."""
    format_version: ClassVar[int] = 1
    tooth: str
    version: str
    information: ManifestInfo
    dependencies: Mapping[str, Tuple[Tuple[str, ...], ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class ManifestV2:
    """Manifest with an ``info`` block; ranges may still use the ``prerequisites`` key."""
    format_version: ClassVar[int] = 2
    tooth: str
    version: str
    info: ManifestInfo
    dependencies: Mapping[str, str] = field(default_factory=dict)
    prerequisites: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ManifestV3:
    """Canonical manifest."""
    format_version: ClassVar[int] = 3
    tooth: str
    version: str
    info: ManifestInfo
    dependencies: Mapping[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def description(self) -> str:
        return self.info.description

    @property
    def author(self) -> str:
        return self.info.author

    @property
    def tags(self) -> List[str]:
        return list(self.info.tags)

    @property
    def avatar_url(self) -> str:
        return self.info.avatar_url

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the version 3 tooth.json shape."""
        return {
            "format_version": self.format_version,
            "tooth": self.tooth,
            "version": self.version,
            "info": self.info.to_dict(),
            "dependencies": dict(self.dependencies),
        }


Manifest = Union[ManifestV1, ManifestV2, ManifestV3]


def parse_manifest(data: Any) -> Manifest:
    """
    Build the manifest variant named by ``format_version``.

    Args:
        data: Decoded tooth.json document.

    Returns:
        ManifestV1, ManifestV2 or ManifestV3.

    Raises:
        UnsupportedFormatError: If ``format_version`` is missing or unknown.
        MalformedManifestError: If the document does not match its version's schema.
    """
    if not isinstance(data, Mapping):
        raise MalformedManifestError(f"manifest must be a JSON object, got {type(data).__name__}")

    format_version = data.get("format_version")
    if not isinstance(format_version, int) or isinstance(format_version, bool) or format_version not in SCHEMAS:
        raise UnsupportedFormatError(f"unsupported format_version: {format_version!r}")

    result = validate_manifest(dict(data), format_version)
    if not result.valid:
        details = "; ".join(f"{issue.path or '<root>'}: {issue.message}" for issue in result.errors)
        raise MalformedManifestError(
            f"invalid tooth.json (format_version {format_version}): {details}",
            issues=result.errors,
        )

    tooth = data.get("tooth", "")
    version = data.get("version", "")

    if format_version == 1:
        return ManifestV1(
            tooth=tooth,
            version=version,
            information=ManifestInfo.from_dict(data["information"]),
            dependencies={
                key: tuple(tuple(group) for group in groups)
                for key, groups in (data.get("dependencies") or {}).items()
            },
        )

    if format_version == 2:
        return ManifestV2(
            tooth=tooth,
            version=version,
            info=ManifestInfo.from_dict(data["info"]),
            dependencies=dict(data.get("dependencies") or {}),
            prerequisites=dict(data.get("prerequisites") or {}),
        )

    return ManifestV3(
        tooth=tooth,
        version=version,
        info=ManifestInfo.from_dict(data["info"]),
        dependencies=dict(data.get("dependencies") or {}),
    )


def v1_to_v2(manifest: ManifestV1) -> ManifestV2:
    """
    Move the ``information`` block to ``info`` and collapse range groups.

    Each ``[lower, upper]`` group is joined with a space and groups are joined
    with `` || ``. Tags default to an empty list and the avatar to "".
    """
    information = manifest.information
    return ManifestV2(
        tooth=manifest.tooth,
        version=manifest.version,
        info=ManifestInfo(
            name=information.name,
            description=information.description,
            author=information.author,
            tags=tuple(information.tags),
            avatar_url="",
            source=information.source,
        ),
        dependencies={
            key: RANGE_GROUP_SEPARATOR.join(" ".join(group) for group in groups)
            for key, groups in manifest.dependencies.items()
        },
    )


def v2_to_v3(manifest: ManifestV2) -> ManifestV3:
    """
    Resolve each dependency range from ``dependencies``, then ``prerequisites``.

    A key present in neither (or null in both) resolves to "". The info block is
    carried over unchanged.
    """
    keys = list(manifest.dependencies)
    keys.extend(key for key in manifest.prerequisites if key not in manifest.dependencies)

    dependencies: Dict[str, str] = {}
    for key in keys:
        value = manifest.dependencies.get(key)
        if value is None:
            value = manifest.prerequisites.get(key)
        dependencies[key] = value if value is not None else ""

    return ManifestV3(
        tooth=manifest.tooth,
        version=manifest.version,
        info=manifest.info,
        dependencies=dependencies,
    )


def migrate(manifest: Manifest) -> ManifestV3:
    """Apply migration edges until the manifest is at format version 3."""
    while not isinstance(manifest, ManifestV3):
        if isinstance(manifest, ManifestV1):
            manifest = v1_to_v2(manifest)
        elif isinstance(manifest, ManifestV2):
            manifest = v2_to_v3(manifest)
        else:
            raise UnsupportedFormatError(f"not a manifest variant: {type(manifest).__name__}")
    return manifest


def load_manifest(source: Union[str, bytes, Mapping[str, Any]]) -> ManifestV3:
    """
    Decode, validate and migrate a tooth.json document.

    Args:
        source: Raw JSON text or an already decoded mapping.

    Returns:
        The canonical ManifestV3.

    Raises:
        UnsupportedFormatError: If the format version is unknown.
        MalformedManifestError: If the JSON is invalid or the document is malformed.
    """
    if isinstance(source, (str, bytes)):
        try:
            data = json.loads(source)
        except ValueError as e:
            raise MalformedManifestError(f"invalid JSON in tooth.json: {e}") from e
    else:
        data = source

    manifest = parse_manifest(data)
    if not isinstance(manifest, ManifestV3):
        logger.debug(f"Migrating tooth.json from format_version {manifest.format_version}")
    return migrate(manifest)
