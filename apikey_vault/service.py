"""
KeyVault: one object wiring the vault components from a single config.

Methods return plain dicts with camelCase keys, ready to be serialized by
whatever transport sits in front of the vault.
"""
from typing import Optional

from .config import VaultConfig
from .credentials import CredentialIssuer
from .crypto import SecretCipher
from .gate import AccessGate
from .identity import IdentityStore
from .models import (
    Profile,
    RegistrationResult,
    SecretCreated,
    SecretDeleted,
    SecretUpdated,
)
from .providers import parse_provider
from .storage import StorageBackend
from .vault import VaultStore


class KeyVault:
    """Credential issuance, authentication and provider secrets.

    Args:
        config: Validated vault settings, master key included.
        backend: Storage for identities and secrets.
    """

    def __init__(self, config: VaultConfig, backend: StorageBackend):
        self.config = config
        self.backend = backend
        self.cipher = SecretCipher(config.master_key, config.cipher_backend)
        self.issuer = CredentialIssuer(
            rounds=config.bcrypt_rounds,
            prefix=config.credential_prefix,
            nbytes=config.credential_bytes,
        )
        self.identities = IdentityStore(
            backend,
            self.issuer,
            self.cipher,
            recoverable_credentials=config.recoverable_credentials,
        )
        self.gate = AccessGate(self.identities, self.issuer)
        self.secrets = VaultStore(backend, self.cipher)

    @classmethod
    def from_env(cls, backend: StorageBackend) -> "KeyVault":
        """Build a KeyVault from ``VAULT_*`` environment variables.

        Raises:
            ConfigurationError: If the environment holds no usable settings.
        """
        return cls(VaultConfig.from_env(), backend)

    async def close(self) -> None:
        await self.backend.close()

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    async def register(self, email: str) -> dict:
        identity, raw, created = await self.identities.register_or_fetch(email)
        return RegistrationResult(
            identity_id=identity.identity_id,
            email=identity.email,
            raw_credential=raw,
            created=created,
        ).dump()

    async def authenticate(self, raw_credential: Optional[str]) -> str:
        return await self.gate.authenticate(raw_credential)

    async def profile(self, identity_id: str) -> dict:
        identity = await self.identities.get_profile(identity_id)
        return Profile.from_identity(identity).dump()

    async def reissue_credential(self, identity_id: str) -> dict:
        raw = await self.identities.reissue(identity_id)
        identity = await self.identities.get_profile(identity_id)
        return RegistrationResult(
            identity_id=identity.identity_id,
            email=identity.email,
            raw_credential=raw,
            created=False,
        ).dump()

    async def remove_identity(self, identity_id: str) -> None:
        await self.identities.remove(identity_id)

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    async def create_secret(self, identity_id: str, provider: str, plaintext: str) -> dict:
        secret_id = await self.secrets.create(identity_id, provider, plaintext)
        return SecretCreated(
            provider=parse_provider(provider), secret_id=secret_id,
        ).dump()

    async def read_secret(self, identity_id: str, provider: str) -> dict:
        value = await self.secrets.read(identity_id, provider)
        return value.dump()

    async def update_secret(self, identity_id: str, provider: str, plaintext: str) -> dict:
        updated_at = await self.secrets.update(identity_id, provider, plaintext)
        return SecretUpdated(
            provider=parse_provider(provider), updated_at=updated_at,
        ).dump()

    async def delete_secret(self, identity_id: str, provider: str) -> dict:
        await self.secrets.delete(identity_id, provider)
        return SecretDeleted(provider=parse_provider(provider)).dump()

    async def list_secrets(self, identity_id: str) -> list[dict]:
        return [summary.dump() for summary in await self.secrets.list(identity_id)]
