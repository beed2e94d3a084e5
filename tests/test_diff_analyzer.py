"""Tests for diff parsing and format detection."""

import json
from datetime import UTC, datetime

import pytest

from flowguard.verify.diff_analyzer import (
    DiffAnalyzer,
    MalformedHunkError,
    detect_format,
    parse_diff,
    parse_hunks,
)
from flowguard.verify.errors import StructuralError
from flowguard.verify.models import ChangeType, DiffFormat, FileStatus

TWO_FILE_DIFF = """diff --git a/app.py b/app.py
index 1111111..2222222 100644
--- a/app.py
+++ b/app.py
@@ -1,3 +1,3 @@
 import os
-x = 1
+x = 2
 print(x)
diff --git a/util.py b/util.py
index 3333333..4444444 100644
--- a/util.py
+++ b/util.py
@@ -10,2 +10,3 @@
 def f():
+    return 1
     pass
"""

RENAME_DIFF = """diff --git a/old.py b/new.py
similarity index 90%
rename from old.py
rename to new.py
index 1111111..2222222 100644
--- a/old.py
+++ b/new.py
@@ -1 +1 @@
-a
+b
"""

DELETE_DIFF = """diff --git a/gone.py b/gone.py
deleted file mode 100644
index 1111111..0000000
--- a/gone.py
+++ /dev/null
@@ -1,2 +0,0 @@
-a
-b
"""

PATCH_EMAIL = """From 0123456789abcdef0123456789abcdef01234567 Mon Sep 17 00:00:00 2001
From: Ada Lovelace <ada@example.com>
Date: Tue, 3 Feb 2026 10:15:00 +0000
Subject: [PATCH 1/2] Add login handler

---
 src/login.py | 1 +
 1 file changed, 1 insertion(+)

diff --git a/src/login.py b/src/login.py
index 1111111..2222222 100644
--- a/src/login.py
+++ b/src/login.py
@@ -1 +1,2 @@
 import auth
+import session
--
2.43.0
"""


class TestGitDiffs:
    """Parsing of git-format diffs."""

    def test_one_changed_file_per_segment(self) -> None:
        analysis = parse_diff(TWO_FILE_DIFF, DiffFormat.GIT)
        assert analysis.total_files == 2
        assert [f.path for f in analysis.changed_files] == ["app.py", "util.py"]

    def test_totals_match_per_file_changes(self) -> None:
        analysis = parse_diff(TWO_FILE_DIFF)
        assert analysis.additions == sum(f.additions for f in analysis.changed_files)
        assert analysis.deletions == sum(f.deletions for f in analysis.changed_files)
        assert (analysis.additions, analysis.deletions) == (2, 1)

    def test_total_lines_excludes_context(self) -> None:
        analysis = parse_diff(TWO_FILE_DIFF)
        assert analysis.total_lines == 3
        contexts = [
            c for f in analysis.changed_files for c in f.changes
            if c.type == ChangeType.CONTEXT
        ]
        assert len(contexts) == 4

    def test_line_numbers_follow_hunk_headers(self) -> None:
        analysis = parse_diff(TWO_FILE_DIFF)
        util = analysis.changed_files[1]
        added = [c for c in util.changes if c.type == ChangeType.ADDITION]
        assert added[0].line_number == 11
        assert added[0].content == "    return 1"

        app = analysis.changed_files[0]
        deleted = [c for c in app.changes if c.type == ChangeType.DELETION]
        assert deleted[0].line_number == 2

    def test_parsing_is_idempotent(self) -> None:
        analyzer = DiffAnalyzer()
        assert analyzer.parse_diff(TWO_FILE_DIFF) == analyzer.parse_diff(TWO_FILE_DIFF)

    def test_rename(self) -> None:
        analysis = parse_diff(RENAME_DIFF)
        file = analysis.changed_files[0]
        assert file.status == FileStatus.RENAMED
        assert file.path == "new.py"
        assert file.old_path == "old.py"
        assert analysis.renamed_files == 1

    def test_deleted_file(self) -> None:
        analysis = parse_diff(DELETE_DIFF)
        file = analysis.changed_files[0]
        assert file.status == FileStatus.DELETED
        assert file.path == "gone.py"
        assert file.deletions == 2
        assert analysis.deleted_files == 1

    def test_new_file(self) -> None:
        diff = (
            "diff --git a/n.py b/n.py\nnew file mode 100644\n"
            "--- /dev/null\n+++ b/n.py\n@@ -0,0 +1,2 @@\n+a\n+b\n"
        )
        analysis = parse_diff(diff)
        assert analysis.changed_files[0].status == FileStatus.ADDED
        assert analysis.added_files == 1
        assert analysis.additions == 2

    def test_patch_email_preamble_and_signature_are_ignored(self) -> None:
        analysis = parse_diff(PATCH_EMAIL)
        assert analysis.total_files == 1
        assert analysis.additions == 1
        assert analysis.deletions == 0

    def test_malformed_hunk_header_skips_file(self) -> None:
        diff = TWO_FILE_DIFF.replace("@@ -10,2 +10,3 @@", "@@ -ten +ten @@")
        analysis = parse_diff(diff)
        assert [f.path for f in analysis.changed_files] == ["app.py"]
        assert len(analysis.parsing_errors) == 1
        assert "util.py" in analysis.parsing_errors[0]

    def test_declared_git_without_headers_is_structural_error(self) -> None:
        with pytest.raises(StructuralError):
            parse_diff("--- a/x\n+++ b/x\n@@ -1 +1 @@\n-a\n+b\n", DiffFormat.GIT)

    def test_text_without_files_is_structural_error(self) -> None:
        with pytest.raises(StructuralError):
            parse_diff("just some prose", DiffFormat.UNIFIED)


class TestOtherFormats:
    """Unified text and JSON diffs."""

    def test_empty_content_yields_empty_analysis(self) -> None:
        analysis = parse_diff("   \n")
        assert analysis.total_files == 0
        assert analysis.changed_files == []

    def test_unified_diff(self) -> None:
        diff = "--- a/x.py\n+++ b/x.py\n@@ -1,2 +1,2 @@\n keep\n-old\n+new\n"
        analysis = parse_diff(diff, DiffFormat.UNIFIED)
        assert [f.path for f in analysis.changed_files] == ["x.py"]
        assert (analysis.additions, analysis.deletions) == (1, 1)

    def test_bare_hunk_has_unknown_path(self) -> None:
        analysis = parse_diff("@@ -1 +1 @@\n-a\n+b\n")
        assert analysis.changed_files[0].path == "unknown"

    def test_github_files(self) -> None:
        payload = [
            {
                "filename": "src/a.py",
                "status": "modified",
                "patch": "@@ -1 +1,2 @@\n a\n+b",
            },
            {"filename": "src/b.py", "status": "removed", "patch": "@@ -1 +0,0 @@\n-b"},
            {
                "filename": "src/c.py",
                "status": "renamed",
                "previous_filename": "src/old_c.py",
            },
        ]
        analysis = parse_diff(json.dumps(payload))
        statuses = [f.status for f in analysis.changed_files]
        assert statuses == [FileStatus.MODIFIED, FileStatus.DELETED, FileStatus.RENAMED]
        assert analysis.changed_files[2].old_path == "src/old_c.py"
        assert (analysis.additions, analysis.deletions) == (1, 1)

    def test_gitlab_changes(self) -> None:
        payload = {
            "changes": [
                {
                    "old_path": "a.py",
                    "new_path": "a.py",
                    "new_file": True,
                    "diff": "@@ -0,0 +1 @@\n+x",
                }
            ]
        }
        analysis = parse_diff(json.dumps(payload))
        assert analysis.changed_files[0].status == FileStatus.ADDED
        assert analysis.additions == 1

    def test_invalid_json_for_declared_format(self) -> None:
        with pytest.raises(StructuralError):
            parse_diff("[not json", DiffFormat.GITHUB)


class TestDetectFormat:
    """Format classification by leading structure."""

    def test_git(self) -> None:
        assert detect_format("diff --git a/x b/x\n...") == DiffFormat.GIT

    def test_github(self) -> None:
        assert detect_format('[{"filename": "x.py"}]') == DiffFormat.GITHUB

    def test_gitlab(self) -> None:
        assert detect_format('{"changes": []}') == DiffFormat.GITLAB

    def test_patch_email_is_git(self) -> None:
        assert detect_format(PATCH_EMAIL) == DiffFormat.GIT

    def test_everything_else_is_unified(self) -> None:
        assert detect_format("--- a/x\n+++ b/x\n") == DiffFormat.UNIFIED
        assert detect_format("{broken") == DiffFormat.UNIFIED


def test_parse_hunks_rejects_bad_header() -> None:
    with pytest.raises(MalformedHunkError):
        parse_hunks(["@@ nonsense @@", "+a"])


def test_extract_metadata_from_patch_email() -> None:
    metadata = DiffAnalyzer().extract_metadata(PATCH_EMAIL)
    assert metadata.commit_hash == "0123456789abcdef0123456789abcdef01234567"
    assert metadata.author == "Ada Lovelace <ada@example.com>"
    assert metadata.message == "Add login handler"
    assert metadata.timestamp == datetime(2026, 2, 3, 10, 15, tzinfo=UTC)


def test_lines_past_stale_hunk_counts_are_classified() -> None:
    diff = (
        "diff --git a/app.py b/app.py\n--- a/app.py\n+++ b/app.py\n"
        "@@ -1,1 +1,1 @@\n-old\n+new\n+extra1\n+extra2\n"
    )

    analysis = parse_diff(diff, DiffFormat.GIT)

    assert analysis.additions == 3
    assert analysis.deletions == 1
    assert analysis.parsing_errors == []
    added = [c for c in analysis.changed_files[0].changes if c.type == ChangeType.ADDITION]
    assert [c.line_number for c in added] == [1, 2, 3]


def test_patch_signature_ends_overflowing_hunk() -> None:
    changes = parse_hunks(["@@ -1 +1 @@", "-a", "+b", "+c", "-- ", "+not code"])
    assert [c.content for c in changes] == ["a", "b", "c"]
