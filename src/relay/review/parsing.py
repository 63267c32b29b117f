"""Post-processing of generated review text.

- The last line of the form ``Title: <text>`` becomes the suggested pull
  request title and is removed from the body.
- Empty or unrecognized backend output is replaced by FALLBACK_MESSAGE.
- A body that fails the richness check gets ADVISORY_NOTE appended once.
"""

import logging
import re
from typing import Optional, Tuple

from src.relay.generation.base import GenerationResult
from src.relay.review.models import GeneratedReview

logger = logging.getLogger(__name__)


FALLBACK_TITLE = "AI Review: Code Changes"

FALLBACK_MESSAGE = (
    "Unable to generate a detailed AI review at this time. "
    "Please review the changes manually."
)

ADVISORY_NOTE = (
    "> **Note:** this automated review is brief and may be incomplete. "
    "Please review the changes carefully before merging."
)

COMMENT_HEADING = "AI Code Review:"

# Tolerates markdown emphasis models like to add: "**Title:** Fix x"
_TITLE_LINE = re.compile(
    r"^\s*(?:\*\*|__)?title\s*:\s*(?:\*\*|__)?\s*(?P<title>.*?)\s*$",
    re.IGNORECASE,
)

_TITLE_QUOTES = "\"'`*_ "


def extract_title(text: str) -> Tuple[Optional[str], str]:
    """Split the suggested title from the review text.

    Returns:
        (title, body) where title is None when no non-empty ``Title:``
        line exists. Only the last such line is used and removed.
    """
    lines = text.splitlines()
    for index in range(len(lines) - 1, -1, -1):
        match = _TITLE_LINE.match(lines[index])
        if not match:
            continue
        title = match.group("title").strip(_TITLE_QUOTES)
        if not title:
            continue
        body = "\n".join(lines[:index] + lines[index + 1:]).strip()
        return title, body
    return None, text.strip()


def is_too_short(body: str, min_chars: int, min_lines: int) -> bool:
    """Richness check: fewer characters or non-blank lines than required."""
    line_count = sum(1 for line in body.splitlines() if line.strip())
    return len(body) < min_chars or line_count < min_lines


def append_advisory_note(body: str) -> str:
    """Append ADVISORY_NOTE unless the body already ends with it."""
    stripped = body.rstrip()
    if stripped.endswith(ADVISORY_NOTE):
        return stripped
    return f"{stripped}\n\n{ADVISORY_NOTE}"


def parse_generated_review(
    result: GenerationResult,
    min_chars: int,
    min_lines: int,
) -> GeneratedReview:
    """Turn backend output into the review that gets published."""
    if not result.is_recognized:
        logger.warning(
            "Generation output unusable, publishing fallback message",
            extra={"raw_format": result.raw_format.value},
        )
        return GeneratedReview(
            title=FALLBACK_TITLE,
            body=FALLBACK_MESSAGE,
            malformed=True,
        )

    title, body = extract_title(result.text)

    if not body:
        # Output was nothing but a title line
        return GeneratedReview(
            title=title or FALLBACK_TITLE,
            title_extracted=title is not None,
            body=FALLBACK_MESSAGE,
            malformed=True,
        )

    too_short = is_too_short(body, min_chars, min_lines)
    if too_short:
        body = append_advisory_note(body)

    return GeneratedReview(
        title=title or FALLBACK_TITLE,
        title_extracted=title is not None,
        body=body,
        too_short=too_short,
    )


def format_comment(review: GeneratedReview) -> str:
    return f"{COMMENT_HEADING}\n\n{review.body}"
