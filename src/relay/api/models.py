"""Request and response models for the relay HTTP API.

The browser front end sends camelCase keys (repoOwner, repoName,
webhookUrl); the snake_case names are accepted too.
"""

from typing import Dict, Optional

from pydantic import AliasChoices, BaseModel, Field


class OAuthRequest(BaseModel):
    """Body of POST /github-oauth."""

    code: str = Field(..., min_length=1)


class OAuthResponse(BaseModel):
    success: bool = True


class CreateWebhookRequest(BaseModel):
    """Body of POST /create-webhook."""

    owner: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("owner", "repoOwner"),
    )
    repo: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("repo", "repoName"),
    )


class CreateWebhookResponse(BaseModel):
    success: bool = True
    hook_id: int


class CheckWebhookRequest(BaseModel):
    """Body of POST /check-webhook.

    Without webhookUrl the configured public webhook URL is looked for.
    """

    owner: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("repoOwner", "owner"),
    )
    repo: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("repoName", "repo"),
    )
    webhook_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("webhookUrl", "webhook_url"),
    )


class CheckWebhookResponse(BaseModel):
    exists: bool


class WebhookResponse(BaseModel):
    """Acknowledgement returned to GitHub for a delivery."""

    success: bool
    status: str
    message: Optional[str] = None
    pr_id: Optional[str] = None
    comment_id: Optional[int] = None
    pr_updated: bool = False


class HealthResponse(BaseModel):
    status: str
    dependencies: Dict[str, str] = Field(default_factory=dict)
