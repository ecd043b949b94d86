"""
VaultStore — Encrypted provider secrets, scoped to one identity.

Provides the public API for provider secrets:
- ``create(identity_id, provider, plaintext)`` — encrypt and store a new secret
- ``read(identity_id, provider)`` — decrypt a secret and bump ``last_used``
- ``update(identity_id, provider, plaintext)`` — replace the ciphertext
- ``delete(identity_id, provider)`` — remove the secret
- ``list(identity_id)`` — metadata summaries, ordered by provider

Every ciphertext is bound to its ``(identity_id, provider)`` pair, so a blob
copied onto another row does not decrypt.

Security Note:
    Never log plaintext or ciphertext values. Only log identity ids,
    providers and operations.
"""
import uuid
import logging
from datetime import datetime
from typing import Union

from .crypto import SecretCipher
from .exceptions import (
    AlreadyExists,
    DecryptionFailed,
    DuplicateKeyError,
    NotFound,
    VaultCorrupted,
)
from .models import SecretRecord, SecretSummary, SecretValue, utcnow
from .providers import Provider, parse_provider, validate_secret
from .storage import StorageBackend

logger = logging.getLogger("apikey_vault")


def _secret_context(identity_id: str, provider: Provider) -> str:
    return f"secret:{identity_id}:{provider.value}"


class VaultStore:
    """At most one encrypted secret per (identity, provider)."""

    def __init__(self, backend: StorageBackend, cipher: SecretCipher):
        self._backend = backend
        self._cipher = cipher

    async def create(
        self, identity_id: str, provider: Union[str, Provider], plaintext: str
    ) -> str:
        """Encrypt and persist a new secret.

        Returns:
            The new secret id.

        Raises:
            InvalidProvider: Unknown provider.
            ValidationError: Plaintext does not match the provider format.
            AlreadyExists: The identity already holds a secret for provider.
        """
        provider = parse_provider(provider)
        validate_secret(provider, plaintext)
        now = utcnow()
        record = SecretRecord(
            secret_id=uuid.uuid4().hex,
            identity_id=identity_id,
            provider=provider,
            ciphertext=self._cipher.encrypt(
                plaintext, _secret_context(identity_id, provider),
            ),
            created_at=now,
            updated_at=now,
        )
        try:
            await self._backend.insert_secret(record)
        except DuplicateKeyError as err:
            if err.field != "identity_provider":
                raise
            raise AlreadyExists(provider.value) from None
        logger.debug("Vault create: identity=%s provider=%s", identity_id, provider)
        return record.secret_id

    async def read(
        self, identity_id: str, provider: Union[str, Provider]
    ) -> SecretValue:
        """Decrypt and return a secret, recording the access.

        ``last_used`` in the result is the previous access time; the stored
        value is bumped to now.

        Raises:
            InvalidProvider: Unknown provider.
            NotFound: No secret for this provider.
            VaultCorrupted: The stored ciphertext does not decrypt.
        """
        provider = parse_provider(provider)
        record = await self._backend.get_secret(identity_id, provider)
        if record is None:
            raise NotFound(provider.value)
        try:
            plaintext = self._cipher.decrypt(
                record.ciphertext, _secret_context(identity_id, provider),
            )
        except DecryptionFailed:
            logger.error(
                "Vault corrupted: identity=%s provider=%s secret=%s failed to decrypt",
                identity_id, provider, record.secret_id,
            )
            raise VaultCorrupted(identity_id, provider.value) from None
        await self._backend.touch_secret(identity_id, provider, utcnow())
        logger.debug("Vault read: identity=%s provider=%s", identity_id, provider)
        return SecretValue(
            provider=provider,
            plaintext_secret=plaintext,
            last_used=record.last_used,
            created_at=record.created_at,
        )

    async def update(
        self, identity_id: str, provider: Union[str, Provider], plaintext: str
    ) -> datetime:
        """Replace the stored ciphertext of an existing secret.

        Returns:
            The new ``updated_at`` timestamp.

        Raises:
            InvalidProvider: Unknown provider.
            ValidationError: Plaintext does not match the provider format.
            NotFound: No secret for this provider.
        """
        provider = parse_provider(provider)
        validate_secret(provider, plaintext)
        ciphertext = self._cipher.encrypt(
            plaintext, _secret_context(identity_id, provider),
        )
        record = await self._backend.update_secret(
            identity_id, provider, ciphertext, utcnow(),
        )
        if record is None:
            raise NotFound(provider.value)
        logger.debug("Vault update: identity=%s provider=%s", identity_id, provider)
        return record.updated_at

    async def delete(self, identity_id: str, provider: Union[str, Provider]) -> None:
        """Remove a secret.

        Raises:
            InvalidProvider: Unknown provider.
            NotFound: No secret for this provider.
        """
        provider = parse_provider(provider)
        if not await self._backend.delete_secret(identity_id, provider):
            raise NotFound(provider.value)
        logger.debug("Vault delete: identity=%s provider=%s", identity_id, provider)

    async def list(self, identity_id: str) -> list[SecretSummary]:
        """Summaries of every secret held by ``identity_id``, by provider."""
        records = await self._backend.list_secrets(identity_id)
        return [SecretSummary.from_record(r) for r in records]
