"""Parse diffs in git, unified, GitHub and GitLab formats into a DiffAnalysis."""

import json
import logging
import re
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Any

from flowguard.verify.errors import StructuralError
from flowguard.verify.models import (
    Change,
    ChangedFile,
    ChangeType,
    DiffAnalysis,
    DiffFormat,
    DiffMetadata,
    FileStatus,
)

logger = logging.getLogger(__name__)

HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
GIT_HEADER_QUOTED = re.compile(r'^"((?:[^"\\]|\\.)*)" "((?:[^"\\]|\\.)*)"$')
GIT_HEADER_PLAIN = re.compile(r"^a/(.+) b/(.+)$")

COMMIT_LINE = re.compile(r"^From ([a-f0-9]{40})", re.MULTILINE)
AUTHOR_LINE = re.compile(r"^From: (.+) <(.+)>", re.MULTILINE)
SUBJECT_LINE = re.compile(r"^Subject: (?:\[PATCH[^\]]*\])?\s*(.+)$", re.MULTILINE)
DATE_LINE = re.compile(r"^Date: (.+)$", re.MULTILINE)

UNKNOWN_PATH = "unknown"

GITHUB_STATUS = {
    "added": FileStatus.ADDED,
    "removed": FileStatus.DELETED,
    "deleted": FileStatus.DELETED,
    "modified": FileStatus.MODIFIED,
    "renamed": FileStatus.RENAMED,
}


class MalformedHunkError(ValueError):
    """A hunk header could not be parsed."""


@dataclass
class _Segment:
    """Header fields and hunk lines of one file section in a text diff."""

    lines: list[str]
    path: str | None = None
    old_path: str | None = None
    status: FileStatus = FileStatus.MODIFIED
    body: list[str] = field(default_factory=list)


def _unquote(raw: str) -> str:
    if len(raw) >= 2 and raw[0] == '"' and raw[-1] == '"':
        raw = raw[1:-1]
    return raw.replace('\\"', '"').replace("\\\\", "\\")


def _clean_path(raw: str) -> str | None:
    """Normalize a ---/+++ path: drop timestamps, quotes and a/ b/ prefixes."""
    path = _unquote(raw.split("\t")[0].strip())
    if path == "/dev/null":
        return None
    if path.startswith(("a/", "b/")):
        path = path[2:]
    return path


def _parse_git_header(line: str) -> tuple[str, str] | None:
    """Return (old, new) paths from a ``diff --git`` line."""
    rest = line[len("diff --git ") :].strip()

    quoted = GIT_HEADER_QUOTED.match(rest)
    if quoted:
        old, new = _unquote(quoted.group(1)), _unquote(quoted.group(2))
        return old.removeprefix("a/"), new.removeprefix("b/")

    # Unquoted paths may contain spaces; identical halves are unambiguous
    half = (len(rest) - 1) // 2
    left, right = rest[:half], rest[half + 1 :]
    if left.startswith("a/") and right.startswith("b/") and left[2:] == right[2:]:
        return left[2:], right[2:]

    plain = GIT_HEADER_PLAIN.match(rest)
    if plain:
        return plain.group(1), plain.group(2)
    return None


def parse_hunks(lines: list[str]) -> list[Change]:
    """Classify hunk body lines into changes with line numbers.

    Lines past a hunk's header counts are still classified while they start
    with ``+`` or ``-``, since hand-edited diffs often carry stale counts. The
    first other line past the counts, or a ``-- `` patch signature, ends the
    hunk.

    Raises:
        MalformedHunkError: If a line starting with ``@@`` is not a valid
            hunk header.
    """
    changes: list[Change] = []
    old_line = new_line = 0
    old_remaining = new_remaining = 0
    trailing = True

    for line in lines:
        # Body lines never start with "@@", so this is always a header
        if line.startswith("@@"):
            match = HUNK_HEADER.match(line)
            if not match:
                raise MalformedHunkError(f"Malformed hunk header: {line!r}")
            old_line = int(match.group(1))
            old_remaining = int(match.group(2)) if match.group(2) is not None else 1
            new_line = int(match.group(3))
            new_remaining = int(match.group(4)) if match.group(4) is not None else 1
            trailing = False
            continue
        if trailing or line.startswith("\\"):
            continue
        if old_remaining <= 0 and new_remaining <= 0:
            if line.rstrip() == "--" or not line.startswith(("+", "-")):
                trailing = True
                continue

        if line.startswith("+"):
            changes.append(Change(ChangeType.ADDITION, new_line, line[1:]))
            new_line += 1
            new_remaining -= 1
        elif line.startswith("-"):
            changes.append(Change(ChangeType.DELETION, old_line, line[1:]))
            old_line += 1
            old_remaining -= 1
        else:
            # Blank context lines sometimes lose their leading space
            content = line[1:] if line.startswith(" ") else line
            changes.append(Change(ChangeType.CONTEXT, new_line, content))
            old_line += 1
            new_line += 1
            old_remaining -= 1
            new_remaining -= 1

    return changes


class DiffAnalyzer:
    """Parses diff text into structured, per-file line changes.

    Parsing is pure: identical input always yields an equal DiffAnalysis.
    """

    def parse_diff(
        self, content: str, diff_format: DiffFormat | None = None
    ) -> DiffAnalysis:
        """Parse diff content in the given (or detected) format.

        Empty content yields a zero-valued analysis. A file whose hunk header
        cannot be parsed is skipped and noted in ``parsing_errors``.

        Raises:
            StructuralError: If the content cannot be parsed as its format.
        """
        if not content.strip():
            return DiffAnalysis.empty()

        fmt = diff_format or self.detect_format(content)
        if fmt == DiffFormat.GITHUB:
            analysis = self._parse_github(content)
        elif fmt == DiffFormat.GITLAB:
            analysis = self._parse_gitlab(content)
        else:
            analysis = self._parse_text(content, fmt)

        logger.info(
            "Parsed %s diff: %d files, +%d -%d",
            fmt.value,
            analysis.total_files,
            analysis.additions,
            analysis.deletions,
        )
        for error in analysis.parsing_errors:
            logger.warning("Diff parsing: %s", error)
        return analysis

    def detect_format(self, content: str) -> DiffFormat:
        """Classify diff content by its leading structure."""
        text = content.strip()
        if text.startswith("diff --git"):
            return DiffFormat.GIT
        if text.startswith("@@"):
            return DiffFormat.UNIFIED

        if text.startswith(("{", "[")):
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                return DiffFormat.UNIFIED
            if isinstance(data, list) and all(
                isinstance(item, dict) and "filename" in item for item in data
            ):
                return DiffFormat.GITHUB
            if isinstance(data, dict) and isinstance(data.get("changes"), list):
                return DiffFormat.GITLAB
            return DiffFormat.UNIFIED

        # Patch emails carry a preamble before the first git header
        if re.search(r"^diff --git ", text, re.MULTILINE):
            return DiffFormat.GIT
        return DiffFormat.UNIFIED

    def extract_metadata(self, content: str) -> DiffMetadata:
        """Extract provenance from a ``git format-patch`` email preamble."""
        metadata = DiffMetadata()

        commit = COMMIT_LINE.search(content)
        if commit:
            metadata.commit_hash = commit.group(1)

        author = AUTHOR_LINE.search(content)
        if author:
            metadata.author = f"{author.group(1)} <{author.group(2)}>"

        subject = SUBJECT_LINE.search(content)
        if subject:
            metadata.message = subject.group(1).strip()

        date = DATE_LINE.search(content)
        if date:
            try:
                metadata.timestamp = parsedate_to_datetime(date.group(1).strip())
            except (TypeError, ValueError):
                logger.debug("Unparsable patch date: %s", date.group(1))

        return metadata

    # --- Text diffs ---

    def _parse_text(self, content: str, fmt: DiffFormat) -> DiffAnalysis:
        lines = content.splitlines()
        is_git = any(line.startswith("diff --git ") for line in lines)
        if fmt == DiffFormat.GIT and not is_git:
            raise StructuralError(
                "Git diff contains no 'diff --git' file headers", diff_format=fmt.value
            )

        segments = self._git_segments(lines) if is_git else self._unified_segments(lines)
        if not segments:
            raise StructuralError(
                "Diff contains no file headers or hunks", diff_format=fmt.value
            )

        files: list[ChangedFile] = []
        errors: list[str] = []
        for segment in segments:
            if is_git:
                self._read_git_header(segment)
            else:
                self._read_unified_header(segment)

            if segment.path is None:
                errors.append(f"Could not determine file path from: {segment.lines[0]!r}")
                continue
            try:
                changes = parse_hunks(segment.body)
            except MalformedHunkError as e:
                errors.append(f"{segment.path}: {e}")
                continue
            files.append(
                ChangedFile(
                    path=segment.path,
                    status=segment.status,
                    changes=changes,
                    old_path=segment.old_path,
                )
            )

        return DiffAnalysis.from_files(files, errors)

    def _git_segments(self, lines: list[str]) -> list[_Segment]:
        segments: list[_Segment] = []
        for line in lines:
            if line.startswith("diff --git "):
                segments.append(_Segment(lines=[line]))
            elif segments:
                segments[-1].lines.append(line)
        return segments

    def _unified_segments(self, lines: list[str]) -> list[_Segment]:
        segments: list[_Segment] = []
        for i, line in enumerate(lines):
            starts_file = (
                line.startswith("--- ")
                and i + 1 < len(lines)
                and lines[i + 1].startswith("+++ ")
            )
            if starts_file:
                segments.append(_Segment(lines=[line]))
            elif segments:
                segments[-1].lines.append(line)
            elif line.startswith("@@"):
                # Bare hunks without file headers
                segments.append(_Segment(lines=[line], path=UNKNOWN_PATH))
        return segments

    def _split_body(self, segment: _Segment) -> list[str]:
        for i, line in enumerate(segment.lines):
            if line.startswith("@@"):
                segment.body = segment.lines[i:]
                return segment.lines[:i]
        segment.body = []
        return segment.lines

    def _read_git_header(self, segment: _Segment) -> None:
        header = self._split_body(segment)
        paths = _parse_git_header(header[0])
        if paths:
            segment.old_path, segment.path = paths

        minus_path: str | None = None
        for line in header[1:]:
            if line.startswith("new file mode"):
                segment.status = FileStatus.ADDED
            elif line.startswith("deleted file mode"):
                segment.status = FileStatus.DELETED
            elif line.startswith("rename from "):
                segment.status = FileStatus.RENAMED
                segment.old_path = _unquote(line[len("rename from ") :].strip())
            elif line.startswith("rename to "):
                segment.path = _unquote(line[len("rename to ") :].strip())
            elif line.startswith("--- "):
                minus_path = _clean_path(line[4:])
            elif line.startswith("+++ "):
                plus_path = _clean_path(line[4:])
                if plus_path:
                    segment.path = plus_path
                elif minus_path:
                    segment.path = minus_path

        if segment.status != FileStatus.RENAMED:
            segment.old_path = None

    def _read_unified_header(self, segment: _Segment) -> None:
        header = self._split_body(segment)
        if segment.path == UNKNOWN_PATH:
            return

        minus_path = _clean_path(header[0][4:])
        plus_path = _clean_path(header[1][4:]) if len(header) > 1 else None
        if minus_path is None and plus_path is not None:
            segment.status = FileStatus.ADDED
        elif plus_path is None and minus_path is not None:
            segment.status = FileStatus.DELETED
        segment.path = plus_path or minus_path

    # --- JSON diffs ---

    def _load_json(self, content: str, fmt: DiffFormat) -> Any:
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise StructuralError(
                f"Invalid {fmt.value} diff JSON: {e}", diff_format=fmt.value
            ) from e

    def _parse_github(self, content: str) -> DiffAnalysis:
        data = self._load_json(content, DiffFormat.GITHUB)
        if not isinstance(data, list):
            raise StructuralError(
                "GitHub diff must be a JSON array of file objects",
                diff_format=DiffFormat.GITHUB.value,
            )

        files: list[ChangedFile] = []
        errors: list[str] = []
        for index, item in enumerate(data):
            if not isinstance(item, dict) or not item.get("filename"):
                errors.append(f"Entry {index} has no filename")
                continue
            path = str(item["filename"])
            status = GITHUB_STATUS.get(str(item.get("status", "")), FileStatus.MODIFIED)
            try:
                changes = parse_hunks(str(item.get("patch") or "").splitlines())
            except MalformedHunkError as e:
                errors.append(f"{path}: {e}")
                continue
            files.append(
                ChangedFile(
                    path=path,
                    status=status,
                    changes=changes,
                    old_path=(
                        item.get("previous_filename")
                        if status == FileStatus.RENAMED
                        else None
                    ),
                )
            )
        return DiffAnalysis.from_files(files, errors)

    def _parse_gitlab(self, content: str) -> DiffAnalysis:
        data = self._load_json(content, DiffFormat.GITLAB)
        if not isinstance(data, dict) or not isinstance(data.get("changes"), list):
            raise StructuralError(
                "GitLab diff must be a JSON object with a 'changes' array",
                diff_format=DiffFormat.GITLAB.value,
            )

        files: list[ChangedFile] = []
        errors: list[str] = []
        for index, item in enumerate(data["changes"]):
            if not isinstance(item, dict):
                errors.append(f"Change {index} is not an object")
                continue
            path = item.get("new_path") or item.get("old_path")
            if not path:
                errors.append(f"Change {index} has no path")
                continue
            if item.get("new_file"):
                status = FileStatus.ADDED
            elif item.get("deleted_file"):
                status = FileStatus.DELETED
            elif item.get("renamed_file"):
                status = FileStatus.RENAMED
            else:
                status = FileStatus.MODIFIED
            try:
                changes = parse_hunks(str(item.get("diff") or "").splitlines())
            except MalformedHunkError as e:
                errors.append(f"{path}: {e}")
                continue
            files.append(
                ChangedFile(
                    path=str(path),
                    status=status,
                    changes=changes,
                    old_path=(
                        item.get("old_path") if status == FileStatus.RENAMED else None
                    ),
                )
            )
        return DiffAnalysis.from_files(files, errors)


def parse_diff(content: str, diff_format: DiffFormat | None = None) -> DiffAnalysis:
    """Parse diff content with a default analyzer."""
    return DiffAnalyzer().parse_diff(content, diff_format)


def detect_format(content: str) -> DiffFormat:
    """Detect the format of diff content."""
    return DiffAnalyzer().detect_format(content)
