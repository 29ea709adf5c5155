"""tooth.json manifest parsing, validation and migration."""

from .migrator import (
    ManifestInfo,
    ManifestV1,
    ManifestV2,
    ManifestV3,
    load_manifest,
    migrate,
    parse_manifest,
    v1_to_v2,
    v2_to_v3,
)
from .schema import validate_manifest

__all__ = [
    "ManifestInfo",
    "ManifestV1",
    "ManifestV2",
    "ManifestV3",
    "load_manifest",
    "migrate",
    "parse_manifest",
    "v1_to_v2",
    "v2_to_v3",
    "validate_manifest",
]
