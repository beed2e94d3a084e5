"""List command for stored verifications."""

from __future__ import annotations

import argparse

from flowguard.cli.context import workspace_root
from flowguard.verify.storage import ArtifactStorage


def cmd_list(args: argparse.Namespace) -> int:
    """List verifications, newest first."""
    storage = ArtifactStorage(workspace_root())
    verifications = storage.list_verifications(args.epic)
    if not verifications:
        print("No verifications found")
        return 0

    for verification in verifications:
        summary = verification.summary
        verdict = "passed" if summary.passed else "failed"
        print(
            f"{verification.id}  {verification.created_at:%Y-%m-%d %H:%M}  "
            f"{verification.epic_id}  {verdict:<6}  "
            f"{summary.total_issues} issue(s)  {summary.approval_status.value}"
        )
    return 0
