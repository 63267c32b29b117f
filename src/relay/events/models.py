"""Review event models for observability.

This module defines the data models for relay events:
- EventType: Enum of all event types emitted while processing deliveries
- ReviewEvent: Structured event with the subject, repository and details

Every delivery produces a stream of STATE_TRANSITION events and ends in
exactly one REJECTION, ERROR or COMPLETION event (ignored deliveries end
with a transition into the ignored stage).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the review relay.

    Attributes:
        STATE_TRANSITION: A delivery moved from one stage to another.
        REJECTION: A delivery failed authentication or had no registration.
        ERROR: A delivery failed while being processed.
        COMPLETION: A review was published.
    """

    STATE_TRANSITION = "state_transition"
    REJECTION = "rejection"
    ERROR = "error"
    COMPLETION = "completion"


class ReviewEvent(BaseModel):
    """Structured event emitted by the review relay.

    Attributes:
        event_type: The category of event.
        subject: "{owner}/{repo}#{number}" once the pull request is known,
                 otherwise the delivery id or repository.
        repository: Full repository path in format "{owner}/{repo}", or
                    "unknown" before the payload was parsed.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For STATE_TRANSITION events:
            - from_stage, to_stage

        For REJECTION and ERROR events:
            - stage: Stage where processing stopped
            - error_kind: ErrorKind value
            - error_message: Human-readable description

        For COMPLETION events:
            - comment_id, pr_updated, too_short
            - duration_seconds: Total processing time
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    subject: str = Field(
        ...,
        min_length=1,
        description='Pull request identifier in format "{owner}/{repo}#{number}"',
    )

    repository: str = Field(
        default="unknown",
        min_length=1,
        description='Full repository path in format "{owner}/{repo}"',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    details: Dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event for structured logging.

        Example:
            >>> event = ReviewEvent(
            ...     event_type=EventType.ERROR,
            ...     subject="org/repo#12",
            ...     repository="org/repo",
            ...     details={"error_message": "model unavailable"}
            ... )
            >>> event.to_log_dict()["event_type"]
            'error'
        """
        return {
            "event_type": self.event_type.value,
            "subject": self.subject,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
