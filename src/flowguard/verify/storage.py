"""Workspace artifact storage for specs and verification records.

Layout under ``<workspace>/.flowguard/``::

    specs/<spec-id>.md                 markdown with YAML frontmatter
    verifications/<verification-id>.json
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import yaml

from flowguard.config.paths import FlowguardPaths
from flowguard.schema import (
    InvalidSchemaError,
    atomic_write_text,
    header_from_data,
    write_schema_fields,
)
from flowguard.verify.errors import NotFoundError
from flowguard.verify.models import Verification

logger = logging.getLogger(__name__)

FRONTMATTER_DELIMITER = "---"


@dataclass
class SpecDocument:
    """A specification belonging to an epic."""

    id: str
    epic_id: str
    title: str
    content: str
    status: str = "draft"
    author: str | None = None
    tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def frontmatter(self) -> dict[str, Any]:
        """Frontmatter fields written ahead of the markdown body."""
        data: dict[str, Any] = {
            "id": self.id,
            "epicId": self.epic_id,
            "title": self.title,
            "status": self.status,
        }
        if self.author:
            data["author"] = self.author
        if self.tags:
            data["tags"] = list(self.tags)
        if self.created_at:
            data["createdAt"] = self.created_at.isoformat()
        if self.updated_at:
            data["updatedAt"] = self.updated_at.isoformat()
        return data


def _coerce_datetime(value: Any) -> datetime | None:
    # YAML loads unquoted timestamps as datetime/date already
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split ``---`` delimited YAML frontmatter from a markdown body.

    Raises:
        ValueError: If the frontmatter is not a YAML mapping.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        return {}, text

    for index in range(1, len(lines)):
        if lines[index].strip() == FRONTMATTER_DELIMITER:
            raw = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            data = yaml.safe_load(raw) or {}
            if not isinstance(data, dict):
                raise ValueError("Frontmatter must be a YAML mapping")
            return data, body.lstrip("\n")
    return {}, text


class ArtifactStorage:
    """Reads specs and persists verification records for one workspace."""

    def __init__(self, workspace_root: Path) -> None:
        self.paths = FlowguardPaths(workspace=Path(workspace_root))

    # --- Specs ---

    def load_spec(self, spec_id: str) -> SpecDocument:
        """Load a spec by id.

        Raises:
            NotFoundError: If no spec file exists for the id.
            ValueError: If the frontmatter is malformed or lacks required fields.
        """
        path = self.paths.spec_file(spec_id)
        if not path.exists():
            raise NotFoundError("spec", spec_id)

        try:
            data, body = split_frontmatter(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid frontmatter in {path}: {e}") from e

        epic_id = data.get("epicId", data.get("epic_id"))
        if not epic_id:
            raise ValueError(f"Spec {spec_id} is missing required field: epicId")

        tags = data.get("tags") or []
        return SpecDocument(
            id=str(data.get("id", spec_id)),
            epic_id=str(epic_id),
            title=str(data.get("title", spec_id)),
            content=body,
            status=str(data.get("status", "draft")),
            author=data.get("author"),
            tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
            created_at=_coerce_datetime(data.get("createdAt")),
            updated_at=_coerce_datetime(data.get("updatedAt")),
        )

    def list_specs(self, epic_id: str | None = None) -> list[SpecDocument]:
        """List specs, optionally only those of one epic. Unreadable specs are skipped."""
        specs: list[SpecDocument] = []
        if not self.paths.specs_dir.exists():
            return specs

        for path in sorted(self.paths.specs_dir.glob("*.md")):
            try:
                spec = self.load_spec(path.stem)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load spec %s: %s", path.stem, e)
                continue
            if epic_id is None or spec.epic_id == epic_id:
                specs.append(spec)
        return specs

    def save_spec(self, spec: SpecDocument) -> Path:
        """Write a spec as markdown with YAML frontmatter."""
        frontmatter = yaml.safe_dump(
            spec.frontmatter(), default_flow_style=False, sort_keys=False
        )
        text = f"{FRONTMATTER_DELIMITER}\n{frontmatter}{FRONTMATTER_DELIMITER}\n\n{spec.content}"
        path = self.paths.spec_file(spec.id)
        atomic_write_text(path, text)
        logger.info("Saved spec %s to %s", spec.id, path)
        return path

    # --- Verifications ---

    def save_verification(self, verification: Verification) -> str:
        """Persist a verification record atomically and return its id."""
        data = {**write_schema_fields("verification"), **verification.to_dict()}
        path = self.paths.verification_file(verification.id)
        atomic_write_text(path, json.dumps(data, indent=2))
        logger.info("Saved verification %s to %s", verification.id, path)
        return verification.id

    def load_verification(self, verification_id: str) -> Verification:
        """Load a verification record.

        Raises:
            NotFoundError: If no record exists for the id.
            InvalidSchemaError: If the record is of another schema type or
                an unsupported version.
        """
        path = self.paths.verification_file(verification_id)
        if not path.exists():
            raise NotFoundError("verification", verification_id)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise InvalidSchemaError(path, f"Invalid JSON: {e}") from e
        header_from_data(data, "verification", path)
        return Verification.from_dict(data)

    def list_verifications(self, epic_id: str | None = None) -> list[Verification]:
        """List verification records, newest first."""
        records: list[Verification] = []
        if not self.paths.verifications_dir.exists():
            return records

        for path in self.paths.verifications_dir.glob("*.json"):
            try:
                verification = self.load_verification(path.stem)
            except (OSError, ValueError, KeyError, InvalidSchemaError) as e:
                logger.warning("Failed to load verification %s: %s", path.stem, e)
                continue
            if epic_id is None or verification.epic_id == epic_id:
                records.append(verification)

        records.sort(key=lambda v: v.created_at, reverse=True)
        return records
