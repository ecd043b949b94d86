"""
Storage boundary for the vault.

Each method is one atomic operation against the backing store. Uniqueness
(identity email, credential lookup, identity+provider) is enforced by the
store itself and reported as :class:`DuplicateKeyError`.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from ..models import Identity, SecretRecord
from ..providers import Provider


class StorageBackend(ABC):
    """Abstract persistence for identities and secrets."""

    async def close(self) -> None:
        """Release backend resources. No-op by default."""

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_identity(self, identity: Identity) -> None:
        """Persist a new identity.

        Raises:
            DuplicateKeyError: ``field`` is ``"email"`` or
                ``"credential_lookup"``.
        """

    @abstractmethod
    async def get_identity(self, identity_id: str) -> Optional[Identity]:
        pass

    @abstractmethod
    async def get_identity_by_email(self, email: str) -> Optional[Identity]:
        pass

    @abstractmethod
    async def get_identity_by_lookup(self, lookup: str) -> Optional[Identity]:
        pass

    @abstractmethod
    async def replace_credential(
        self,
        identity_id: str,
        credential_hash: bytes,
        credential_lookup: str,
        credential_ciphertext: Optional[bytes],
        updated_at: datetime,
    ) -> Optional[Identity]:
        """Swap the credential of an identity.

        Returns:
            The updated identity, or None if it does not exist.
        """

    @abstractmethod
    async def delete_identity(self, identity_id: str) -> bool:
        """Delete an identity and all of its secrets in one step.

        Returns:
            True if the identity existed.
        """

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_secret(self, record: SecretRecord) -> None:
        """Persist a new secret.

        Raises:
            DuplicateKeyError: ``field`` is ``"identity_provider"``.
            IdentityNotFound: The owning identity does not exist.
        """

    @abstractmethod
    async def get_secret(
        self, identity_id: str, provider: Provider
    ) -> Optional[SecretRecord]:
        pass

    @abstractmethod
    async def touch_secret(
        self, identity_id: str, provider: Provider, when: datetime
    ) -> bool:
        """Set ``last_used``. Returns False if the secret does not exist."""

    @abstractmethod
    async def update_secret(
        self,
        identity_id: str,
        provider: Provider,
        ciphertext: bytes,
        updated_at: datetime,
    ) -> Optional[SecretRecord]:
        """Replace the ciphertext of an existing secret.

        Returns:
            The updated record, or None if it does not exist.
        """

    @abstractmethod
    async def delete_secret(self, identity_id: str, provider: Provider) -> bool:
        pass

    @abstractmethod
    async def list_secrets(self, identity_id: str) -> list[SecretRecord]:
        """Return every secret of an identity, ordered by provider."""
