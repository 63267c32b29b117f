"""GitHub webhook handling for the review relay.

This module parses pull_request webhook deliveries and authenticates them
with HMAC-SHA256 signatures keyed per repository.
"""

from .handler import WebhookHandler
from .models import PullRequestAction, PullRequestEvent
from .signature import (
    RegistrationNotFoundError,
    UnauthorizedError,
    WebhookAuthenticator,
    compute_signature,
    verify_signature,
)

__all__ = [
    "PullRequestAction",
    "PullRequestEvent",
    "RegistrationNotFoundError",
    "UnauthorizedError",
    "WebhookAuthenticator",
    "WebhookHandler",
    "compute_signature",
    "verify_signature",
]
