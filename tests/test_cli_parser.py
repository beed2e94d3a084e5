from __future__ import annotations

from pathlib import Path

import pytest

from flowguard.cli.parser import parse_args


def test_parse_args_without_command() -> None:
    args = parse_args([])
    assert args.command is None
    assert args.workdir is None


def test_parse_args_verify_defaults() -> None:
    args = parse_args(["verify", "--epic", "epic-1", "--diff", "changes.diff"])
    assert args.command == "verify"
    assert args.epic == "epic-1"
    assert args.diff == Path("changes.diff")
    assert args.specs is None
    assert args.no_spec is False
    assert args.format is None
    assert args.max_issues is None
    assert args.skip_low is False


def test_parse_args_verify_options() -> None:
    args = parse_args(
        [
            "-w",
            "/tmp/ws",
            "verify",
            "-e",
            "epic-1",
            "-s",
            "spec-a",
            "-s",
            "spec-b",
            "--github",
            "https://github.com/o/r/pull/1",
            "--skip-low",
            "--max-issues",
            "3",
            "--no-code-examples",
            "--auto-approve",
            "--json",
        ]
    )
    assert args.workdir == Path("/tmp/ws")
    assert args.specs == ["spec-a", "spec-b"]
    assert args.github == "https://github.com/o/r/pull/1"
    assert args.max_issues == 3
    assert args.no_code_examples is True
    assert args.auto_approve is True
    assert args.json is True


def test_parse_args_verify_requires_exactly_one_source() -> None:
    with pytest.raises(SystemExit):
        _ = parse_args(["verify", "--epic", "e"])
    with pytest.raises(SystemExit):
        _ = parse_args(
            ["verify", "--epic", "e", "--diff", "a.diff", "--manual", "b.diff"]
        )


def test_parse_args_verify_rejects_negative_max_issues() -> None:
    with pytest.raises(SystemExit):
        _ = parse_args(
            ["verify", "--epic", "e", "--diff", "a.diff", "--max-issues", "-1"]
        )


def test_parse_args_verify_rejects_unknown_format() -> None:
    with pytest.raises(SystemExit):
        _ = parse_args(["verify", "--epic", "e", "--diff", "a.diff", "-f", "svn"])


def test_parse_args_show_and_list() -> None:
    show = parse_args(["show", "abc", "--json"])
    assert show.verification_id == "abc"
    assert show.json is True

    listing = parse_args(["list", "--epic", "epic-1"])
    assert listing.epic == "epic-1"


def test_parse_args_verify_url_source() -> None:
    args = parse_args(["verify", "-e", "e", "--url", "https://github.com/o/r/pull/1"])
    assert args.url == "https://github.com/o/r/pull/1"
    assert args.diff is None


def test_parse_args_metrics() -> None:
    args = parse_args(["metrics", "-s", "spec-auth", "--json"])
    assert args.command == "metrics"
    assert args.spec == "spec-auth"
    assert args.json is True

    args = parse_args(["metrics"])
    assert args.spec is None
    assert args.json is False
