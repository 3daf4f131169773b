"""Tests for unified-diff application."""

import pytest

from codemod_agent.errors import PatchApplicationError
from codemod_agent.patching import apply_patch, parse_patch, patch_applies

CONTENT = "line1\nline2\nline3\nline4\nline5\n"


def test_simple_replacement():
    patch = "--- a/f.py\n+++ b/f.py\n@@ -2,3 +2,3 @@\n line2\n-line3\n+LINE3\n line4\n"
    assert apply_patch(CONTENT, patch) == "line1\nline2\nLINE3\nline4\nline5\n"


def test_insertion_and_deletion():
    patch = "@@ -1,2 +1,3 @@\n line1\n+inserted\n-line2\n+line2b\n"
    assert apply_patch(CONTENT, patch) == "line1\ninserted\nline2b\nline3\nline4\nline5\n"


def test_hunk_found_away_from_declared_line():
    """Declared line numbers may drift; exact context still matches."""
    patch = "@@ -1,2 +1,2 @@\n line4\n-line5\n+five\n"
    assert apply_patch(CONTENT, patch) == "line1\nline2\nline3\nline4\nfive\n"


def test_multiple_hunks_apply_in_order():
    patch = "@@ -1,1 +1,1 @@\n-line1\n+one\n@@ -5,1 +5,1 @@\n-line5\n+five\n"
    assert apply_patch(CONTENT, patch) == "one\nline2\nline3\nline4\nfive\n"


def test_missing_trailing_newline_is_preserved():
    assert apply_patch("a\nb", "@@ -1,2 +1,2 @@\n a\n-b\n+c\n") == "a\nc"


def test_non_matching_context_raises():
    with pytest.raises(PatchApplicationError) as exc_info:
        apply_patch(CONTENT, "@@ -1,1 +1,1 @@\n-nope\n+yes\n", "/p/f.py")
    assert exc_info.value.file_path == "/p/f.py"


def test_malformed_line_raises():
    with pytest.raises(PatchApplicationError):
        parse_patch("@@ -1,1 +1,1 @@\n?what\n")


def test_patch_without_hunks_raises():
    with pytest.raises(PatchApplicationError):
        apply_patch(CONTENT, "just replace line 3 please")


def test_patch_applies():
    assert patch_applies(CONTENT, "@@ -3,1 +3,1 @@\n-line3\n+3\n")
    assert not patch_applies(CONTENT, "@@ -3,1 +3,1 @@\n-line9\n+9\n")
