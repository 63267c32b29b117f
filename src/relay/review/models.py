"""Review pipeline models.

This module defines the data models for processing one webhook delivery:
- ReviewStage: Stages a delivery moves through, including terminal ones
- ErrorKind: Failure categories, mapped to HTTP status codes by the API
- ReviewRequest: The unit of work derived from a qualifying event
- GeneratedReview: Backend output after post-processing
- ReviewResult: Terminal record returned to the webhook route

Stage Flow (linear, never moves backwards):
    received → filtering → fetching_diff → prompting → generating
    → post_processing → publishing → completed

received may end in rejected, filtering in ignored, and every working
stage from fetching_diff on may end in failed.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from src.relay.github.models import ChangedFile


class ReviewStage(str, Enum):
    """Stages of one webhook delivery."""

    RECEIVED = "received"
    FILTERING = "filtering"
    FETCHING_DIFF = "fetching_diff"
    PROMPTING = "prompting"
    GENERATING = "generating"
    POST_PROCESSING = "post_processing"
    PUBLISHING = "publishing"
    REJECTED = "rejected"
    IGNORED = "ignored"
    FAILED = "failed"
    COMPLETED = "completed"


TERMINAL_STAGES = frozenset(
    {
        ReviewStage.REJECTED,
        ReviewStage.IGNORED,
        ReviewStage.FAILED,
        ReviewStage.COMPLETED,
    }
)


VALID_TRANSITIONS: Dict[ReviewStage, List[ReviewStage]] = {
    ReviewStage.RECEIVED: [ReviewStage.FILTERING, ReviewStage.REJECTED, ReviewStage.FAILED],
    ReviewStage.FILTERING: [ReviewStage.FETCHING_DIFF, ReviewStage.IGNORED, ReviewStage.FAILED],
    ReviewStage.FETCHING_DIFF: [ReviewStage.PROMPTING, ReviewStage.FAILED],
    ReviewStage.PROMPTING: [ReviewStage.GENERATING, ReviewStage.FAILED],
    ReviewStage.GENERATING: [ReviewStage.POST_PROCESSING, ReviewStage.FAILED],
    ReviewStage.POST_PROCESSING: [ReviewStage.PUBLISHING, ReviewStage.FAILED],
    ReviewStage.PUBLISHING: [ReviewStage.COMPLETED, ReviewStage.FAILED],
    ReviewStage.REJECTED: [],
    ReviewStage.IGNORED: [],
    ReviewStage.FAILED: [],
    ReviewStage.COMPLETED: [],
}


def is_valid_transition(from_stage: ReviewStage, to_stage: ReviewStage) -> bool:
    return to_stage in VALID_TRANSITIONS.get(from_stage, [])


class ErrorKind(str, Enum):
    """Failure categories.

    Attributes:
        UNAUTHORIZED: Missing session or bad webhook signature.
        NOT_FOUND: No webhook registration for the repository.
        MALFORMED_PAYLOAD: Body is not a usable webhook payload.
        UPSTREAM_TRANSIENT: 5xx or network failure from GitHub or the
                            backend (after retries, for the backend).
        UPSTREAM_REJECTED: 4xx from GitHub or the backend.
        STORAGE: The registration store failed.
        INTERNAL: Anything else.
    """

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    MALFORMED_PAYLOAD = "malformed_payload"
    UPSTREAM_TRANSIENT = "upstream_transient"
    UPSTREAM_REJECTED = "upstream_rejected"
    STORAGE = "storage"
    INTERNAL = "internal"


def classify_status(status_code: Optional[int]) -> ErrorKind:
    """Map an upstream HTTP status to an error kind.

    A missing status means the request never got an answer.
    """
    if status_code is None or status_code >= 500:
        return ErrorKind.UPSTREAM_TRANSIENT
    return ErrorKind.UPSTREAM_REJECTED


class ReviewRequest(BaseModel):
    """Derived unit of work for one qualifying event. Never persisted.

    Exactly one of diff_text (diff mode) or files (files mode) is filled.
    """

    owner: str
    repository: str
    pr_number: int = Field(..., gt=0)
    pr_title: str = ""
    diff_text: str = ""
    files: List[ChangedFile] = Field(default_factory=list)
    access_token: str = Field(..., repr=False)

    @property
    def pr_id(self) -> str:
        return f"{self.owner}/{self.repository}#{self.pr_number}"


class GeneratedReview(BaseModel):
    """Backend output after post-processing.

    Attributes:
        title: Suggested pull request title (fallback when none was found).
        title_extracted: Whether the title came from the generated text.
        body: Review text to publish, advisory note included.
        too_short: The body failed the richness check.
        malformed: The backend output was unusable and the fallback
                   message was substituted.
    """

    title: str
    title_extracted: bool = False
    body: str
    too_short: bool = False
    malformed: bool = False


class ReviewResult(BaseModel):
    """Terminal record of processing one delivery."""

    stage: ReviewStage
    history: List[ReviewStage] = Field(default_factory=list)
    delivery_id: Optional[str] = None
    repository: Optional[str] = None
    pr_number: Optional[int] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    comment_id: Optional[int] = None
    title: Optional[str] = None
    pr_updated: bool = False
    too_short: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def pr_id(self) -> Optional[str]:
        if self.repository and self.pr_number:
            return f"{self.repository}#{self.pr_number}"
        return None
