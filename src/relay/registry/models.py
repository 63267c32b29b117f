"""Webhook registration and session models.

A WebhookRegistration ties one repository to the GitHub hook we created for
it and to the secret GitHub signs deliveries with. There is at most one
registration per (owner, name); registering again replaces it.

Secrets and access tokens are held as SecretStr so they never show up in
reprs, logs, or serialized responses.
"""

import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, SecretStr


# 32 random bytes, hex encoded
SECRET_BYTES = 32


class SecretMode(str, Enum):
    """Where the webhook verification secret comes from.

    Attributes:
        PER_REPOSITORY: Each registration carries its own generated secret.
        SHARED: One deployment-wide secret from configuration. Kept for
                compatibility with deployments that registered hooks before
                per-repository secrets existed.
        DISABLED: No verification (OAuth-only deployments).
    """

    PER_REPOSITORY = "per_repository"
    SHARED = "shared"
    DISABLED = "disabled"


def generate_webhook_secret() -> str:
    """Generate a new webhook secret from the OS CSPRNG."""
    return secrets.token_hex(SECRET_BYTES)


def repository_key(owner: str, name: str) -> str:
    """Canonical lookup key for a repository.

    GitHub owner and repository names are case-insensitive.
    """
    return f"{owner}/{name}".lower()


class WebhookRegistration(BaseModel):
    """One repository's configured inbound hook.

    Attributes:
        owner: Repository owner (user or organization).
        name: Repository name.
        hook_id: Identifier GitHub assigned to the hook.
        secret: Shared secret used to sign deliveries. None when the
                deployment does not verify signatures.
        access_token: GitHub credential of the user who registered the hook.
        webhook_url: URL the hook delivers to.
        created_at: When the registration was stored (UTC).
    """

    model_config = {"frozen": True}

    owner: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    hook_id: int = Field(..., gt=0)
    secret: Optional[SecretStr] = None
    access_token: Optional[SecretStr] = None
    webhook_url: str = ""
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    @property
    def key(self) -> str:
        return repository_key(self.owner, self.name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


# One day
DEFAULT_SESSION_TTL_SECONDS = 86400


class Session(BaseModel):
    """A browser session holding the GitHub OAuth token.

    Sessions expire a fixed time after creation; an expired session is
    treated as unknown.
    """

    model_config = {"frozen": True}

    session_id: str = Field(..., min_length=1)
    access_token: SecretStr
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    def is_expired(self, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now - self.created_at >= timedelta(seconds=ttl_seconds)


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)
