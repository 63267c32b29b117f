"""GitHub API client for OAuth, webhook, and pull request interactions."""

from src.relay.github.client import (
    GitHubAPIError,
    GitHubClient,
    OAuthExchangeError,
    RateLimitError,
)
from src.relay.github.models import ChangedFile, HookInfo, PullRequestInfo

__all__ = [
    "ChangedFile",
    "GitHubAPIError",
    "GitHubClient",
    "HookInfo",
    "OAuthExchangeError",
    "PullRequestInfo",
    "RateLimitError",
]
