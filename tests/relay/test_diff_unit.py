"""Unit tests for diff splitting, formatting and truncation."""

from src.relay.github.models import ChangedFile
from src.relay.review.diff import (
    TRUNCATION_MARKER,
    format_changed_files,
    format_diff_for_prompt,
    format_patch_lines,
    split_diff_by_file,
    truncate,
)


TWO_FILE_DIFF = """diff --git a/src/app.py b/src/app.py
index 83db48f..bf269f4 100644
--- a/src/app.py
+++ b/src/app.py
@@ -1,4 +1,5 @@
 import os
-value = os.environ["VALUE"]
+value = os.environ.get("VALUE")
+if value is None:
     raise SystemExit(1)
diff --git a/README.md b/README.md
deleted file mode 100644
index 1111111..0000000
--- a/README.md
+++ /dev/null
@@ -1,2 +0,0 @@
-# Widgets
-Old readme
"""


class TestSplitDiffByFile:
    def test_splits_per_file(self):
        files = split_diff_by_file(TWO_FILE_DIFF)

        assert [f.filename for f in files] == ["src/app.py", "README.md"]

    def test_metadata_lines_are_dropped(self):
        files = split_diff_by_file(TWO_FILE_DIFF)

        joined = "\n".join(files[0].lines)
        assert "index 83db48f" not in joined
        assert "+++ b/src/app.py" not in joined
        assert files[0].lines[0].startswith("@@")

    def test_deleted_file_keeps_source_name(self):
        files = split_diff_by_file(TWO_FILE_DIFF)

        assert files[1].filename == "README.md"
        assert files[1].lines[1:] == ["-# Widgets", "-Old readme"]

    def test_removed_line_resembling_header_stays_in_hunk(self):
        diff = (
            "diff --git a/notes.txt b/notes.txt\n"
            "--- a/notes.txt\n"
            "+++ b/notes.txt\n"
            "@@ -1 +1 @@\n"
            "--- separator\n"
            "+=== separator\n"
        )

        files = split_diff_by_file(diff)

        assert files[0].filename == "notes.txt"
        assert "--- separator" in files[0].lines

    def test_binary_file_is_flagged(self):
        diff = (
            "diff --git a/logo.png b/logo.png\n"
            "index 1111111..2222222 100644\n"
            "Binary files a/logo.png and b/logo.png differ\n"
        )

        files = split_diff_by_file(diff)

        assert files[0].binary
        assert files[0].lines == []

    def test_text_without_headers_yields_nothing(self):
        assert split_diff_by_file("just some text") == []


class TestFormatPatchLines:
    def test_markers_and_indentation(self):
        lines = ["@@ -1,3 +1,3 @@", " keep", "-old", "+new"]

        assert format_patch_lines(lines) == [
            "@@ -1,3 +1,3 @@",
            "  keep",
            "- old",
            "+ new",
        ]

    def test_no_newline_marker_is_dropped(self):
        lines = ["+last line", "\\ No newline at end of file"]

        assert format_patch_lines(lines) == ["+ last line"]


class TestFormatDiffForPrompt:
    def test_sections_per_file(self):
        text = format_diff_for_prompt(TWO_FILE_DIFF, max_chars=10_000)

        assert "### src/app.py" in text
        assert "### README.md" in text
        assert "+ value = os.environ.get(\"VALUE\")" in text
        assert "  import os" in text
        assert "diff --git" not in text

    def test_non_diff_text_passes_through(self):
        assert format_diff_for_prompt("  plain text  ", max_chars=100) == "plain text"

    def test_output_respects_budget(self):
        text = format_diff_for_prompt(TWO_FILE_DIFF, max_chars=80)

        assert len(text) <= 80
        assert text.endswith(TRUNCATION_MARKER)


class TestFormatChangedFiles:
    def test_patch_and_counts(self):
        files = [
            ChangedFile(
                filename="src/app.py",
                status="modified",
                additions=1,
                deletions=1,
                patch="@@ -1 +1 @@\n-old\n+new",
            )
        ]

        text = format_changed_files(files, max_chars=1000)

        assert text.startswith("### src/app.py (modified, +1/-1)")
        assert "- old" in text
        assert "+ new" in text

    def test_file_without_patch_is_listed(self):
        files = [ChangedFile(filename="logo.png", status="added", additions=0, deletions=0)]

        text = format_changed_files(files, max_chars=1000)

        assert text == "### logo.png (added, +0/-0, patch omitted)"


class TestTruncate:
    def test_short_text_unchanged(self):
        assert truncate("abc", 10) == "abc"

    def test_zero_budget_means_unlimited(self):
        assert truncate("abc" * 100, 0) == "abc" * 100

    def test_long_text_cut_with_marker(self):
        text = truncate("x" * 500, 100)

        assert len(text) <= 100
        assert text.endswith(TRUNCATION_MARKER)

    def test_budget_smaller_than_marker(self):
        assert truncate("x" * 500, 5) == "xxxxx"
