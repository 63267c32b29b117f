"""Storage protocols and in-memory implementations.

The relay keeps two kinds of state: webhook registrations (one per
repository) and browser sessions (one GitHub token per session). Both are
small key-value collections, so the protocols only require get and upsert.

The in-memory stores guard their dictionaries with an asyncio.Lock, which
makes an upsert atomic with respect to concurrent reads of the same key.
The PostgreSQL implementation lives in postgres.py.
"""

import asyncio
import logging
from typing import Dict, Optional, Protocol, runtime_checkable

from src.relay.registry.models import (
    DEFAULT_SESSION_TTL_SECONDS,
    Session,
    WebhookRegistration,
    repository_key,
)

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a storage operation fails.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


@runtime_checkable
class RegistrationStore(Protocol):
    """Persistence for webhook registrations, keyed by repository."""

    async def get(self, owner: str, name: str) -> Optional[WebhookRegistration]:
        """Return the registration for a repository, or None."""
        ...

    async def upsert(self, registration: WebhookRegistration) -> None:
        """Store a registration, replacing any existing one for the repository."""
        ...

    async def ping(self) -> bool:
        """Report whether the backing storage is reachable."""
        ...


@runtime_checkable
class SessionStore(Protocol):
    """Persistence for OAuth sessions, keyed by session id."""

    async def get_session(self, session_id: str) -> Optional[Session]:
        ...

    async def save_session(self, session: Session) -> None:
        ...


class InMemoryRegistrationStore:
    """Process-local registration store.

    Registrations are lost on restart, so hooks have to be registered again
    after a deploy.
    """

    def __init__(self) -> None:
        self._registrations: Dict[str, WebhookRegistration] = {}
        self._lock = asyncio.Lock()

    async def get(self, owner: str, name: str) -> Optional[WebhookRegistration]:
        async with self._lock:
            return self._registrations.get(repository_key(owner, name))

    async def upsert(self, registration: WebhookRegistration) -> None:
        async with self._lock:
            replaced = registration.key in self._registrations
            self._registrations[registration.key] = registration

        logger.info(
            "Stored webhook registration",
            extra={
                "repository": registration.full_name,
                "hook_id": registration.hook_id,
                "replaced": replaced,
            },
        )

    async def ping(self) -> bool:
        return True


class InMemorySessionStore:
    """Process-local session store.

    Expired sessions are never returned, and are dropped whenever a new
    session is saved.
    """

    def __init__(self, session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS) -> None:
        self.session_ttl_seconds = session_ttl_seconds
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def get_session(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.is_expired(self.session_ttl_seconds):
                del self._sessions[session_id]
                return None
            return session

    async def save_session(self, session: Session) -> None:
        async with self._lock:
            expired = [
                key
                for key, existing in self._sessions.items()
                if existing.is_expired(self.session_ttl_seconds)
            ]
            for key in expired:
                del self._sessions[key]
            self._sessions[session.session_id] = session

        if expired:
            logger.debug("Pruned %d expired sessions", len(expired))

    async def ping(self) -> bool:
        return True
