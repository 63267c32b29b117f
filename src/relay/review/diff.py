"""Diff pre-processing for review prompts.

Turns a unified diff (or the per-file patches from the PR files listing)
into a compact per-file listing:

    ### src/app.py
    @@ -10,6 +10,7 @@ def main():
      unchanged line
    + added line
    - removed line

Git metadata lines (``diff --git``, ``index``, ``---``/``+++``, mode
changes) are dropped. The result is cut to a character budget so large
pull requests still fit the backend's input limit.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from src.relay.github.models import ChangedFile


TRUNCATION_MARKER = "\n... (diff truncated)"

_DIFF_HEADER = re.compile(r"^diff --git a/(?P<old>.+?) b/(?P<new>.+)$")


@dataclass
class FileDiff:
    """The patch lines of one file from a unified diff."""

    filename: str
    lines: List[str] = field(default_factory=list)
    binary: bool = False


def split_diff_by_file(diff_text: str) -> List[FileDiff]:
    """Split a unified diff into per-file sections.

    The file name comes from the ``+++ b/...`` line, falling back to the
    ``--- a/...`` line for deletions and to the ``diff --git`` header for
    changes without content lines (renames, binaries).
    """
    files: List[FileDiff] = []
    current: Optional[FileDiff] = None
    in_hunk = False

    for line in diff_text.splitlines():
        header = _DIFF_HEADER.match(line)
        if header:
            current = FileDiff(filename=header.group("new"))
            files.append(current)
            in_hunk = False
            continue

        if current is None:
            continue

        if line.startswith("@@"):
            in_hunk = True
        if in_hunk:
            current.lines.append(line)
            continue

        if line.startswith("+++ "):
            target = line[4:].strip()
            if target != "/dev/null":
                current.filename = _strip_prefix(target)
            continue
        if line.startswith("--- "):
            source = line[4:].strip()
            if source != "/dev/null":
                current.filename = _strip_prefix(source)
            continue
        if line.startswith("Binary files"):
            current.binary = True

    return files


def _strip_prefix(path: str) -> str:
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path


def format_patch_lines(lines: Sequence[str]) -> List[str]:
    """Re-prefix patch lines for readability.

    Added and removed lines keep their marker followed by a space, context
    lines get two spaces, hunk headers pass through unchanged.
    """
    formatted = []
    for line in lines:
        if line.startswith("@@"):
            formatted.append(line)
        elif line.startswith("+"):
            formatted.append(f"+ {line[1:]}")
        elif line.startswith("-"):
            formatted.append(f"- {line[1:]}")
        elif line.startswith("\\"):
            # "\ No newline at end of file"
            continue
        else:
            formatted.append(f"  {line[1:] if line.startswith(' ') else line}")
    return formatted


def truncate(text: str, max_chars: int) -> str:
    """Cut ``text`` to at most ``max_chars`` characters, marker included."""
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    if max_chars <= len(TRUNCATION_MARKER):
        return text[:max_chars]
    keep = max_chars - len(TRUNCATION_MARKER)
    return text[:keep].rstrip() + TRUNCATION_MARKER


def _render_section(filename: str, lines: Sequence[str], note: str = "") -> str:
    heading = f"### {filename}"
    if note:
        heading = f"{heading} ({note})"
    body = "\n".join(format_patch_lines(lines))
    return f"{heading}\n{body}" if body else heading


def format_diff_for_prompt(diff_text: str, max_chars: int) -> str:
    """Format a raw unified diff for a prompt.

    Text that does not look like a git diff is passed through (truncated)
    rather than dropped.
    """
    files = split_diff_by_file(diff_text)
    if not files:
        return truncate(diff_text.strip(), max_chars)

    sections = [
        _render_section(f.filename, f.lines, note="binary" if f.binary else "")
        for f in files
    ]
    return truncate("\n\n".join(sections), max_chars)


def format_changed_files(files: Sequence[ChangedFile], max_chars: int) -> str:
    """Format the PR files listing for a prompt.

    GitHub omits the patch for binaries and very large files; those are
    listed by name so the model still knows they changed.
    """
    sections = []
    for changed in files:
        note = f"{changed.status}, +{changed.additions}/-{changed.deletions}"
        if changed.patch is None:
            sections.append(
                _render_section(changed.filename, [], note=f"{note}, patch omitted")
            )
        else:
            sections.append(
                _render_section(changed.filename, changed.patch.splitlines(), note=note)
            )
    return truncate("\n\n".join(sections), max_chars)
