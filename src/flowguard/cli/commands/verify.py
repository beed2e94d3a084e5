"""Verify command: check a diff against specs and rules."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from flowguard.cli.context import (
    read_input,
    render_verification,
    workspace_file_reader,
    workspace_root,
)
from flowguard.verify.adapters import (
    DiffSourceInput,
    GitHubSource,
    GitLabSource,
    GitSource,
    ManualSource,
    adapt,
    detect_source,
)
from flowguard.verify.errors import AdapterError, StructuralError
from flowguard.verify.models import DiffFormat, VerificationInput, VerificationOptions


def _source_from_args(
    args: argparse.Namespace, gitlab_base_url: str | None = None
) -> DiffSourceInput:
    if args.github:
        return GitHubSource(args.github)
    if args.gitlab:
        return GitLabSource(args.gitlab)
    if args.url:
        source = detect_source(args.url, gitlab_base_url)
        if not isinstance(source, (GitHubSource, GitLabSource)):
            raise ValueError(f"Not a pull or merge request URL: {args.url}")
        return source
    if args.manual is not None:
        return ManualSource(read_input(args.manual))
    return GitSource(read_input(args.diff))


def _spec_ids(args: argparse.Namespace) -> list[str] | None:
    if args.no_spec:
        return []
    return list(args.specs) if args.specs else None


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify changes; exit 0 when passed, 1 when not, 2 on fatal errors."""
    from flowguard.config.settings import settings
    from flowguard.verify.engine import VerificationEngine
    from flowguard.verify.rules import default_registry

    try:
        source = _source_from_args(args, settings.gitlab_base_url)
    except OSError as e:
        print(f"Error: Cannot read diff: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    root = workspace_root()
    registry = default_registry()
    try:
        engine = VerificationEngine.from_settings(settings, root, registry)
        # Local diffs describe the checkout, so rules can read whole files
        if isinstance(source, (GitSource, ManualSource)):
            engine.file_reader = workspace_file_reader(root)

        diff_input = asyncio.run(adapt(source, settings=settings))
        if args.format:
            diff_input.format = DiffFormat(args.format)

        request = VerificationInput(
            epic_id=args.epic,
            diff_input=diff_input,
            spec_ids=_spec_ids(args),
            options=VerificationOptions(
                include_code_examples=not args.no_code_examples,
                skip_low_severity=args.skip_low,
                max_issues=args.max_issues,
                auto_approve=args.auto_approve,
            ),
        )
        verification = asyncio.run(engine.verify_changes(request))
    except AdapterError as e:
        status = f" (HTTP {e.status})" if e.status else ""
        print(f"Error: {e}{status}", file=sys.stderr)
        return 2
    except StructuralError as e:
        print(f"Error: Invalid diff: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    finally:
        registry.clear()

    if args.json:
        print(json.dumps(verification.to_dict(), indent=2))
    else:
        print(render_verification(verification))
    return 0 if verification.summary.passed else 1
