"""
Structural validation of tooth.json manifests.

Each manifest format version has its own JSON schema. Validation never raises;
it returns a ValidationResult listing every issue with its document path.
"""

from typing import Any, Dict, List

import jsonschema

from modindex.core.interfaces import ValidationIssue, ValidationLevel, ValidationResult


_STRING_MAP = {
    "type": "object",
    "additionalProperties": {"type": "string"},
}

_TAGS = {
    "type": "array",
    "items": {"type": "string"},
}

MANIFEST_V1_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "tooth.json format version 1",
    "type": "object",
    "required": ["format_version", "information"],
    "properties": {
        "format_version": {"const": 1},
        "tooth": {"type": "string"},
        "version": {"type": "string"},
        "information": {
            "type": "object",
            "required": ["name"],
            "properties": {
                "name": {"type": "string"},
                "description": {"type": "string"},
                "author": {"type": "string"},
                "tags": _TAGS,
            },
        },
        "dependencies": {
            "type": "object",
            "additionalProperties": {
                "type": "array",
                "items": {
                    "type": "array",
                    "items": {"type": "string"},
                },
            },
        },
    },
}

_INFO = {
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": {"type": "string"},
        "description": {"type": "string"},
        "author": {"type": "string"},
        "tags": _TAGS,
        "avatar_url": {"type": "string"},
        "source": {"type": "string"},
    },
}

MANIFEST_V2_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "tooth.json format version 2",
    "type": "object",
    "required": ["format_version", "info"],
    "properties": {
        "format_version": {"const": 2},
        "tooth": {"type": "string"},
        "version": {"type": "string"},
        "info": _INFO,
        "dependencies": {"type": ["object", "null"], "additionalProperties": {"type": "string"}},
        "prerequisites": {"type": ["object", "null"], "additionalProperties": {"type": "string"}},
    },
}

MANIFEST_V3_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "tooth.json format version 3",
    "type": "object",
    "required": ["format_version", "info"],
    "properties": {
        "format_version": {"const": 3},
        "tooth": {"type": "string"},
        "version": {"type": "string"},
        "info": _INFO,
        "dependencies": _STRING_MAP,
    },
}

SCHEMAS: Dict[int, Dict[str, Any]] = {
    1: MANIFEST_V1_SCHEMA,
    2: MANIFEST_V2_SCHEMA,
    3: MANIFEST_V3_SCHEMA,
}

_validators = {
    version: jsonschema.Draft7Validator(schema) for version, schema in SCHEMAS.items()
}


def validate_manifest(data: Any, format_version: int) -> ValidationResult:
    """
    Validate a decoded manifest against the schema of one format version.

    Args:
        data: Decoded manifest document.
        format_version: Format version whose schema applies.

    Returns:
        ValidationResult with one ERROR issue per schema violation.

    Raises:
        KeyError: If there is no schema for ``format_version``.
    """
    validator = _validators[format_version]

    issues: List[ValidationIssue] = []
    for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path]):
        path = "/".join(str(p) for p in error.path) if error.path else ""
        schema_path = "/".join(str(p) for p in error.schema_path) if error.schema_path else ""
        issues.append(ValidationIssue(
            level=ValidationLevel.ERROR,
            message=error.message,
            path=path,
            schema_path=schema_path,
        ))

    return ValidationResult(valid=not issues, issues=issues)
