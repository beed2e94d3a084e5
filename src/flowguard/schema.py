"""Schema versioning for persisted files.

Every file FlowGuard writes carries ``_schema``/``_version`` fields so that
loaders can reject files of another type or an unsupported version.

Schema Types:
- metrics: LLM call metrics (JSONL, header on the first line)
- verification: A single verification record (JSON document)
"""
from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Current schema versions
CURRENT_VERSIONS: dict[str, str] = {
    "metrics": "1.0",
    "verification": "1.0",
}


class SchemaError(Exception):
    """Base exception for schema-related errors."""

    pass


class InvalidSchemaError(SchemaError):
    """Raised when schema validation fails."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        super().__init__(f"Invalid schema in {path}: {message}")


@dataclass(frozen=True)
class SchemaHeader:
    """Schema type and version read from a persisted file."""

    schema_type: str
    schema_version: str


def write_schema_fields(schema_type: str) -> dict[str, str]:
    """Get schema fields to include in a header or document.

    Raises:
        ValueError: If schema_type is unknown.
    """
    if schema_type not in CURRENT_VERSIONS:
        raise ValueError(f"Unknown schema type: {schema_type}")

    return {
        "_schema": schema_type,
        "_version": CURRENT_VERSIONS[schema_type],
    }


def header_from_data(
    data: dict[str, Any], expected_type: str, path: Path
) -> SchemaHeader:
    """Validate the schema fields of an already-parsed header or document.

    Raises:
        InvalidSchemaError: If the fields are missing, name another type, or
            carry a version this release cannot read.
    """
    schema_type = data.get("_schema")
    schema_version = data.get("_version")

    if schema_type is None or schema_version is None:
        raise InvalidSchemaError(path, "Missing _schema/_version fields")
    if schema_type != expected_type:
        raise InvalidSchemaError(
            path, f"Expected schema '{expected_type}', got '{schema_type}'"
        )
    if str(schema_version) != CURRENT_VERSIONS[expected_type]:
        raise InvalidSchemaError(
            path, f"Unsupported {schema_type} version {schema_version}"
        )
    logger.debug("Validated %s v%s header: %s", schema_type, schema_version, path)
    return SchemaHeader(schema_type=schema_type, schema_version=str(schema_version))


def atomic_write_text(path: Path, content: str) -> None:
    """Write a file via a temp file in the same directory, then rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        temp_path.replace(path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


