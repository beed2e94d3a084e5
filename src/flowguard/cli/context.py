"""Shared context helpers for CLI command modules."""

from __future__ import annotations

import sys
from pathlib import Path

from flowguard.config.paths import get_paths
from flowguard.verify.models import Verification


def workspace_root() -> Path:
    """Workspace the CLI operates on (cwd after ``--workdir``)."""
    return get_paths().workspace


def read_input(path: Path) -> str:
    """Read a file argument, treating ``-`` as stdin."""
    if str(path) == "-":
        return sys.stdin.read()
    return path.read_text(encoding="utf-8")


def workspace_file_reader(root: Path):
    """Return a reader for post-change file content in a local checkout.

    Paths come from the diff, so anything resolving outside ``root`` raises
    PermissionError and the engine falls back to the diff's own content.
    """
    resolved_root = root.resolve()

    def read(relative_path: str) -> str:
        path = (resolved_root / relative_path).resolve()
        if not path.is_relative_to(resolved_root):
            raise PermissionError(f"Path escapes the workspace: {relative_path}")
        return path.read_text(encoding="utf-8")

    return read


def render_verification(verification: Verification) -> str:
    """Render a verification record for the terminal."""
    summary = verification.summary
    source = verification.diff_source
    analysis = verification.analysis

    lines = [
        f"Verification {verification.id} (epic {verification.epic_id})",
        f"Source: {source.commit_hash[:12]} on {source.branch} by {source.author}",
    ]
    if source.pr_url:
        lines.append(f"  {source.pr_url}")
    lines.append(
        f"Files: {analysis.total_files} (+{analysis.additions} -{analysis.deletions})"
    )
    verdict = "PASSED" if summary.passed else "FAILED"
    lines.append(f"Result: {verdict} ({summary.approval_status.value})")
    lines.append(f"Recommendation: {summary.recommendation}")

    counts = ", ".join(f"{label}: {n}" for label, n in summary.issue_counts.items())
    lines.append(f"\nIssues ({summary.total_issues}) - {counts}")
    for issue in verification.issues:
        location = f"{issue.file}:{issue.line}" if issue.line else issue.file
        origin = f" [{issue.rule_id}]" if issue.rule_id else ""
        lines.append(
            f"\n  {issue.severity.value:<8} {issue.category.value:<13} {location}{origin}"
        )
        lines.extend(f"    {text}" for text in issue.message.splitlines())
        fix = issue.fix_suggestion
        if fix and fix.description:
            lines.append(f"    Fix: {fix.description}")
            lines.extend(f"      {n}. {step}" for n, step in enumerate(fix.steps, 1))
    return "\n".join(lines)
