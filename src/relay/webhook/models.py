"""GitHub pull_request webhook event models.

The relay reviews a pull request when it is opened and whenever new commits
are pushed to it (synchronize). Every other action is acknowledged and
ignored.
"""

from enum import Enum

from pydantic import BaseModel, Field


class PullRequestAction(str, Enum):
    """pull_request actions that trigger a review.

    Attributes:
        OPENED: A pull request was created.
        SYNCHRONIZE: The head branch of a pull request was updated.
    """

    OPENED = "opened"
    SYNCHRONIZE = "synchronize"


class PullRequestEvent(BaseModel):
    """Parsed GitHub pull_request webhook event.

    Attributes:
        action: The raw action string from the payload.
        pr_number: The pull request number within the repository.
        owner: The repository owner (user or organization).
        repository: The repository name (without owner prefix).
        title: Current pull request title.
        diff_url: URL of the unified diff, when present in the payload.
    """

    action: str = Field(..., min_length=1)
    pr_number: int = Field(..., gt=0)
    owner: str = Field(..., min_length=1)
    repository: str = Field(..., min_length=1)
    title: str = ""
    diff_url: str = ""

    @property
    def full_repository(self) -> str:
        return f"{self.owner}/{self.repository}"

    @property
    def pr_id(self) -> str:
        """Canonical identifier in format "{owner}/{repository}#{pr_number}"."""
        return f"{self.owner}/{self.repository}#{self.pr_number}"

    @property
    def is_reviewable(self) -> bool:
        return self.action in {a.value for a in PullRequestAction}
