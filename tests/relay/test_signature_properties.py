"""Tests for webhook signature verification and delivery authentication.

Properties:
- A payload signed with a secret verifies against that secret.
- Flipping any single bit of the payload or of the secret makes the
  signature mismatch.
"""

from typing import Optional
from unittest.mock import AsyncMock

import pytest
from hypothesis import given, settings, strategies as st
from pydantic import SecretStr

from src.relay.registry.models import SecretMode, WebhookRegistration
from src.relay.registry.store import InMemoryRegistrationStore
from src.relay.webhook.signature import (
    RegistrationNotFoundError,
    UnauthorizedError,
    WebhookAuthenticator,
    compute_signature,
    verify_signature,
)


PAYLOAD = b'{"action":"opened","number":42,"repository":{"name":"widgets","owner":{"login":"octo"}}}'
SECRET = "3f5e0c8a9b1d2e4f"


def _make_registration(
    owner: str = "octo",
    name: str = "widgets",
    secret: Optional[str] = SECRET,
    access_token: str = "gho_user_token",
) -> WebhookRegistration:
    return WebhookRegistration(
        owner=owner,
        name=name,
        hook_id=1001,
        secret=SecretStr(secret) if secret is not None else None,
        access_token=SecretStr(access_token),
        webhook_url="https://relay.example/webhook",
    )


@st.composite
def payload_with_flip(draw: st.DrawFn):
    payload = draw(st.binary(min_size=1, max_size=2048))
    index = draw(st.integers(min_value=0, max_value=len(payload) - 1))
    bit = draw(st.integers(min_value=0, max_value=7))
    return payload, index, bit


def _flip(data: bytes, index: int, bit: int) -> bytes:
    tampered = bytearray(data)
    tampered[index] ^= 1 << bit
    return bytes(tampered)


# =============================================================================
# Properties
# =============================================================================


@given(payload=st.binary(max_size=4096), secret=st.binary(min_size=1, max_size=128))
@settings(max_examples=100)
def test_signed_payload_verifies(payload, secret):
    signature = compute_signature(payload, secret)

    assert signature.startswith("sha256=")
    assert verify_signature(payload, signature, secret)


@given(flip=payload_with_flip(), secret=st.binary(min_size=1, max_size=64))
@settings(max_examples=100)
def test_flipping_a_payload_bit_is_rejected(flip, secret):
    payload, index, bit = flip
    signature = compute_signature(payload, secret)

    assert not verify_signature(_flip(payload, index, bit), signature, secret)


@given(
    payload=st.binary(max_size=1024),
    secret=st.binary(min_size=1, max_size=64),
    data=st.data(),
)
@settings(max_examples=100)
def test_flipping_a_secret_bit_is_rejected(payload, secret, data):
    index = data.draw(st.integers(min_value=0, max_value=len(secret) - 1))
    bit = data.draw(st.integers(min_value=0, max_value=7))
    signature = compute_signature(payload, secret)

    assert not verify_signature(payload, signature, _flip(secret, index, bit))


# =============================================================================
# verify_signature
# =============================================================================


class TestVerifySignature:
    def test_missing_signature_is_rejected(self):
        assert not verify_signature(PAYLOAD, None, SECRET)
        assert not verify_signature(PAYLOAD, "", SECRET)

    def test_signature_without_prefix_is_rejected(self):
        bare = compute_signature(PAYLOAD, SECRET)[len("sha256="):]

        assert not verify_signature(PAYLOAD, bare, SECRET)

    def test_reserialized_json_does_not_verify(self):
        signature = compute_signature(PAYLOAD, SECRET)
        reformatted = PAYLOAD.replace(b",", b", ")

        assert not verify_signature(reformatted, signature, SECRET)

    def test_str_and_bytes_secret_agree(self):
        assert compute_signature(PAYLOAD, SECRET) == compute_signature(
            PAYLOAD, SECRET.encode("utf-8")
        )


# =============================================================================
# WebhookAuthenticator
# =============================================================================


class TestPerRepositoryMode:
    @pytest.mark.asyncio
    async def test_valid_signature_returns_registration(self):
        store = InMemoryRegistrationStore()
        registration = _make_registration()
        await store.upsert(registration)
        authenticator = WebhookAuthenticator(store)

        result = await authenticator.authenticate(
            "octo", "widgets", PAYLOAD, compute_signature(PAYLOAD, SECRET)
        )

        assert result == registration

    @pytest.mark.asyncio
    async def test_lookup_ignores_case(self):
        store = InMemoryRegistrationStore()
        await store.upsert(_make_registration(owner="Octo", name="Widgets"))
        authenticator = WebhookAuthenticator(store)

        result = await authenticator.authenticate(
            "octo", "widgets", PAYLOAD, compute_signature(PAYLOAD, SECRET)
        )

        assert result is not None
        assert result.full_name == "Octo/Widgets"

    @pytest.mark.asyncio
    async def test_wrong_secret_is_unauthorized(self):
        store = InMemoryRegistrationStore()
        await store.upsert(_make_registration())
        authenticator = WebhookAuthenticator(store)

        with pytest.raises(UnauthorizedError) as exc_info:
            await authenticator.authenticate(
                "octo", "widgets", PAYLOAD, compute_signature(PAYLOAD, "other-secret")
            )

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_header_is_unauthorized(self):
        store = InMemoryRegistrationStore()
        await store.upsert(_make_registration())
        authenticator = WebhookAuthenticator(store)

        with pytest.raises(UnauthorizedError, match="Missing X-Hub-Signature-256"):
            await authenticator.authenticate("octo", "widgets", PAYLOAD, None)

    @pytest.mark.asyncio
    async def test_unregistered_repository_is_not_found(self):
        authenticator = WebhookAuthenticator(InMemoryRegistrationStore())

        with pytest.raises(RegistrationNotFoundError) as exc_info:
            await authenticator.authenticate(
                "octo", "widgets", PAYLOAD, compute_signature(PAYLOAD, SECRET)
            )

        assert exc_info.value.status_code == 404
        assert exc_info.value.repository == "octo/widgets"

    @pytest.mark.asyncio
    async def test_other_repositorys_secret_is_not_accepted(self):
        store = InMemoryRegistrationStore()
        await store.upsert(_make_registration(name="widgets", secret="widgets-secret"))
        await store.upsert(_make_registration(name="gadgets", secret="gadgets-secret"))
        authenticator = WebhookAuthenticator(store)

        with pytest.raises(UnauthorizedError):
            await authenticator.authenticate(
                "octo", "widgets", PAYLOAD, compute_signature(PAYLOAD, "gadgets-secret")
            )

    @pytest.mark.asyncio
    async def test_registration_without_secret_skips_verification(self):
        store = InMemoryRegistrationStore()
        await store.upsert(_make_registration(secret=None))
        authenticator = WebhookAuthenticator(store)

        result = await authenticator.authenticate("octo", "widgets", PAYLOAD, None)

        assert result is not None

    @pytest.mark.asyncio
    async def test_registration_is_read_once(self):
        store = AsyncMock()
        store.get.return_value = _make_registration()
        authenticator = WebhookAuthenticator(store)

        await authenticator.authenticate(
            "octo", "widgets", PAYLOAD, compute_signature(PAYLOAD, SECRET)
        )

        store.get.assert_awaited_once_with("octo", "widgets")


class TestSharedMode:
    @pytest.mark.asyncio
    async def test_shared_secret_verifies_unregistered_repository(self):
        authenticator = WebhookAuthenticator(
            InMemoryRegistrationStore(),
            mode=SecretMode.SHARED,
            shared_secret="deployment-secret",
        )

        result = await authenticator.authenticate(
            "octo", "widgets", PAYLOAD, compute_signature(PAYLOAD, "deployment-secret")
        )

        assert result is None

    @pytest.mark.asyncio
    async def test_unconfigured_shared_secret_rejects_everything(self):
        authenticator = WebhookAuthenticator(
            InMemoryRegistrationStore(),
            mode=SecretMode.SHARED,
            shared_secret="",
        )

        with pytest.raises(UnauthorizedError):
            await authenticator.authenticate(
                "octo", "widgets", PAYLOAD, compute_signature(PAYLOAD, "")
            )


class TestDisabledMode:
    @pytest.mark.asyncio
    async def test_unsigned_delivery_is_accepted(self):
        store = InMemoryRegistrationStore()
        registration = _make_registration()
        await store.upsert(registration)
        authenticator = WebhookAuthenticator(store, mode=SecretMode.DISABLED)

        result = await authenticator.authenticate("octo", "widgets", PAYLOAD, None)

        assert result == registration
