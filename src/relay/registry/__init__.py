"""Webhook registration and session storage.

Registrations map a repository to its GitHub hook and verification secret.
Sessions map a browser session to the user's GitHub OAuth token. Both are
stored in memory by default, or in PostgreSQL when a database is configured.
"""

from src.relay.registry.models import (
    SecretMode,
    Session,
    WebhookRegistration,
    generate_session_id,
    generate_webhook_secret,
    repository_key,
)
from src.relay.registry.store import (
    InMemoryRegistrationStore,
    InMemorySessionStore,
    RegistrationStore,
    SessionStore,
    StorageError,
)

__all__ = [
    "InMemoryRegistrationStore",
    "InMemorySessionStore",
    "RegistrationStore",
    "SecretMode",
    "Session",
    "SessionStore",
    "StorageError",
    "WebhookRegistration",
    "generate_session_id",
    "generate_webhook_secret",
    "repository_key",
]
