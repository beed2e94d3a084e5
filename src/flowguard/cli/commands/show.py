"""Show command for stored verifications."""

from __future__ import annotations

import argparse
import json
import sys

from flowguard.cli.context import render_verification, workspace_root
from flowguard.schema import InvalidSchemaError
from flowguard.verify.errors import NotFoundError
from flowguard.verify.storage import ArtifactStorage


def cmd_show(args: argparse.Namespace) -> int:
    """Print one stored verification."""
    storage = ArtifactStorage(workspace_root())
    try:
        verification = storage.load_verification(args.verification_id)
    except (NotFoundError, InvalidSchemaError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(verification.to_dict(), indent=2))
    else:
        print(render_verification(verification))
    return 0
