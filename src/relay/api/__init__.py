"""HTTP request and response models."""

from src.relay.api.models import (
    CheckWebhookRequest,
    CheckWebhookResponse,
    CreateWebhookRequest,
    CreateWebhookResponse,
    HealthResponse,
    OAuthRequest,
    OAuthResponse,
    WebhookResponse,
)

__all__ = [
    "CheckWebhookRequest",
    "CheckWebhookResponse",
    "CreateWebhookRequest",
    "CreateWebhookResponse",
    "HealthResponse",
    "OAuthRequest",
    "OAuthResponse",
    "WebhookResponse",
]
