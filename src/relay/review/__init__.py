"""Review flow: diff formatting, prompts, output parsing, orchestration."""

from src.relay.review.models import (
    ErrorKind,
    GeneratedReview,
    ReviewRequest,
    ReviewResult,
    ReviewStage,
)
from src.relay.review.orchestrator import ReviewOptions, ReviewOrchestrator
from src.relay.review.parsing import (
    ADVISORY_NOTE,
    FALLBACK_MESSAGE,
    FALLBACK_TITLE,
    parse_generated_review,
)

__all__ = [
    "ADVISORY_NOTE",
    "ErrorKind",
    "FALLBACK_MESSAGE",
    "FALLBACK_TITLE",
    "GeneratedReview",
    "ReviewOptions",
    "ReviewOrchestrator",
    "ReviewRequest",
    "ReviewResult",
    "ReviewStage",
    "parse_generated_review",
]
