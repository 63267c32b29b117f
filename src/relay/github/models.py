"""GitHub API data models used by the relay."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PullRequestInfo(BaseModel):
    """The subset of a pull request the relay needs."""

    number: int = Field(..., gt=0)
    title: str = ""
    body: str = ""
    diff_url: str = ""
    state: str = "open"

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "PullRequestInfo":
        return cls(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body") or "",
            diff_url=data.get("diff_url") or "",
            state=data.get("state") or "open",
        )


class ChangedFile(BaseModel):
    """One entry of the pull request files listing.

    GitHub omits ``patch`` for binary files and for very large diffs.
    """

    filename: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0
    patch: Optional[str] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "ChangedFile":
        return cls(
            filename=data["filename"],
            status=data.get("status") or "modified",
            additions=data.get("additions") or 0,
            deletions=data.get("deletions") or 0,
            patch=data.get("patch"),
        )


class HookInfo(BaseModel):
    """A repository webhook as listed by GitHub."""

    hook_id: int
    url: str = ""
    events: List[str] = Field(default_factory=list)
    active: bool = True

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "HookInfo":
        config = data.get("config") or {}
        return cls(
            hook_id=data["id"],
            url=config.get("url") or "",
            events=list(data.get("events") or []),
            active=bool(data.get("active", True)),
        )
