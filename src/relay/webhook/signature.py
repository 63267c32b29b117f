"""Webhook signature verification.

GitHub signs every delivery with HMAC-SHA256 over the raw request body,
keyed with the hook's secret, and sends the result in the
X-Hub-Signature-256 header as ``sha256=<lowercase hex>``.

The digest has to be computed over the exact bytes received. Re-serializing
the decoded JSON changes whitespace and key order, which changes the digest.
"""

import hashlib
import hmac
import logging
from typing import Optional, Union

from src.relay.registry.models import SecretMode, WebhookRegistration
from src.relay.registry.store import RegistrationStore

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


class UnauthorizedError(Exception):
    """Raised when a request cannot be authenticated.

    Covers missing or mismatched webhook signatures as well as missing
    browser sessions.
    """

    status_code = 401

    def __init__(self, message: str = "Invalid signature"):
        self.message = message
        super().__init__(message)


class RegistrationNotFoundError(Exception):
    """Raised when a delivery names a repository with no registration.

    Attributes:
        repository: The "{owner}/{name}" the delivery claimed.
    """

    status_code = 404

    def __init__(self, repository: str):
        self.repository = repository
        self.message = f"No webhook registration for repository: {repository}"
        super().__init__(self.message)


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def compute_signature(body: bytes, secret: Union[str, bytes]) -> str:
    """Compute the X-Hub-Signature-256 value for a payload."""
    digest = hmac.new(_as_bytes(secret), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    body: bytes,
    signature: Optional[str],
    secret: Union[str, bytes],
) -> bool:
    """Check a declared signature against the payload in constant time."""
    if not signature:
        return False
    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))


class WebhookAuthenticator:
    """Authenticates inbound deliveries against the registration store.

    Attributes:
        store: Registration store used to look up per-repository secrets.
        mode: Where the verification secret comes from.
        shared_secret: Deployment-wide secret, read in SHARED mode only.
    """

    def __init__(
        self,
        store: RegistrationStore,
        mode: SecretMode = SecretMode.PER_REPOSITORY,
        shared_secret: str = "",
    ):
        self.store = store
        self.mode = mode
        self.shared_secret = shared_secret

    async def authenticate(
        self,
        owner: str,
        name: str,
        body: bytes,
        signature: Optional[str],
    ) -> Optional[WebhookRegistration]:
        """Verify a delivery for a repository.

        The registration is read exactly once per delivery.

        Args:
            owner: Repository owner named in the payload.
            name: Repository name named in the payload.
            body: Raw request body as received.
            signature: Value of the X-Hub-Signature-256 header.

        Returns:
            The repository's registration, which may be None outside of
            PER_REPOSITORY mode.

        Raises:
            RegistrationNotFoundError: PER_REPOSITORY mode and the repository
                has no registration.
            UnauthorizedError: The signature is missing or does not match.
        """
        repository = f"{owner}/{name}"
        registration = await self.store.get(owner, name)

        if self.mode == SecretMode.DISABLED:
            return registration

        if self.mode == SecretMode.SHARED:
            if not self.shared_secret:
                logger.error("Shared webhook secret is not configured")
                raise UnauthorizedError()
            self._check(body, signature, self.shared_secret, repository)
            return registration

        if registration is None:
            logger.warning(
                "Delivery for unregistered repository",
                extra={"repository": repository},
            )
            raise RegistrationNotFoundError(repository)

        if registration.secret is None:
            logger.warning(
                "Registration has no secret, skipping signature verification",
                extra={"repository": repository},
            )
            return registration

        self._check(body, signature, registration.secret.get_secret_value(), repository)
        return registration

    def _check(
        self,
        body: bytes,
        signature: Optional[str],
        secret: str,
        repository: str,
    ) -> None:
        if not signature:
            logger.warning(
                "Missing X-Hub-Signature-256 header",
                extra={"repository": repository},
            )
            raise UnauthorizedError("Missing X-Hub-Signature-256 header")

        if not verify_signature(body, signature, secret):
            logger.warning(
                "Webhook signature mismatch",
                extra={"repository": repository, "body_length": len(body)},
            )
            raise UnauthorizedError()

        logger.debug(
            "Webhook signature validated",
            extra={"repository": repository},
        )
