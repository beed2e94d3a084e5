"""Argument parser construction for FlowGuard CLI."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

from flowguard.verify.models import DiffFormat


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build and return the top-level CLI parser."""
    parser = argparse.ArgumentParser(
        prog="flowguard",
        description="FlowGuard - verify code changes against their specifications",
    )
    parser.add_argument(
        "--workdir",
        "-w",
        type=Path,
        help="Working directory holding .flowguard/ (default: current directory)",
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Verify command
    verify_parser = subparsers.add_parser(
        "verify",
        help="Verify a diff against an epic's specs and the enabled rules",
    )
    verify_parser.add_argument(
        "--epic",
        "-e",
        required=True,
        help="Epic the changes belong to",
    )
    verify_parser.add_argument(
        "--spec",
        "-s",
        dest="specs",
        action="append",
        help="Spec id to verify against (repeatable; default: all specs of the epic)",
    )
    verify_parser.add_argument(
        "--no-spec",
        action="store_true",
        help="Run rules only; no spec applies to these changes",
    )
    source = verify_parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--diff",
        type=Path,
        help="Git diff or format-patch file ('-' reads stdin)",
    )
    source.add_argument(
        "--github",
        metavar="URL",
        help="GitHub pull request URL",
    )
    source.add_argument(
        "--gitlab",
        metavar="URL",
        help="GitLab merge request URL",
    )
    source.add_argument(
        "--url",
        help="Pull or merge request URL; the host decides GitHub or GitLab",
    )
    source.add_argument(
        "--manual",
        type=Path,
        help="Unified diff file ('-' reads stdin)",
    )
    verify_parser.add_argument(
        "--format",
        "-f",
        choices=[fmt.value for fmt in DiffFormat],
        help="Diff format (default: detect from content)",
    )
    verify_parser.add_argument(
        "--skip-low",
        action="store_true",
        help="Drop Low severity issues from the result",
    )
    verify_parser.add_argument(
        "--max-issues",
        type=_non_negative_int,
        help="Keep only the N most severe issues",
    )
    verify_parser.add_argument(
        "--no-code-examples",
        action="store_true",
        help="Do not request code examples in fix suggestions",
    )
    verify_parser.add_argument(
        "--auto-approve",
        action="store_true",
        help="Approve when only Medium/Low issues remain",
    )
    verify_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the verification record as JSON",
    )

    # Show command
    show_parser = subparsers.add_parser(
        "show",
        help="Show a stored verification",
    )
    show_parser.add_argument(
        "verification_id",
        help="Verification id",
    )
    show_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the verification record as JSON",
    )

    # List command
    list_parser = subparsers.add_parser(
        "list",
        help="List stored verifications, newest first",
    )
    list_parser.add_argument(
        "--epic",
        "-e",
        help="Only verifications of this epic",
    )

    # Rules command
    subparsers.add_parser(
        "rules",
        help="List verification rules and whether they are enabled",
    )

    # Metrics command
    metrics_parser = subparsers.add_parser(
        "metrics",
        help="Show LLM calls, tokens and spend recorded in this workspace",
    )
    metrics_parser.add_argument(
        "--spec",
        "-s",
        help="Only calls made while checking this spec",
    )
    metrics_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON",
    )

    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments from argv (or sys.argv when omitted)."""
    parser = build_parser()
    if argv is None:
        return parser.parse_args()
    return parser.parse_args(list(argv))
