"""
In-process storage backend.

Tables are plain dicts with explicit unique indexes. No method awaits while
it reads or writes the tables, so every call is atomic with respect to other
tasks on the same event loop.
"""
from datetime import datetime
from typing import Optional

from ..exceptions import DuplicateKeyError, IdentityNotFound
from ..models import Identity, SecretRecord
from ..providers import Provider
from .abstract import StorageBackend


class MemoryBackend(StorageBackend):
    """Dict-backed storage for tests and single-process deployments."""

    def __init__(self):
        self._identities: dict[str, Identity] = {}
        self._by_email: dict[str, str] = {}
        self._by_lookup: dict[str, str] = {}
        self._secrets: dict[tuple[str, Provider], SecretRecord] = {}

    def __repr__(self) -> str:
        return (
            f"<MemoryBackend identities={len(self._identities)} "
            f"secrets={len(self._secrets)}>"
        )

    async def insert_identity(self, identity: Identity) -> None:
        if identity.email in self._by_email:
            raise DuplicateKeyError("email")
        if identity.credential_lookup in self._by_lookup:
            raise DuplicateKeyError("credential_lookup")
        if identity.identity_id in self._identities:
            raise DuplicateKeyError("identity_id")
        self._identities[identity.identity_id] = identity.model_copy()
        self._by_email[identity.email] = identity.identity_id
        self._by_lookup[identity.credential_lookup] = identity.identity_id

    def _identity(self, identity_id: Optional[str]) -> Optional[Identity]:
        if identity_id is None:
            return None
        identity = self._identities.get(identity_id)
        return identity.model_copy() if identity else None

    async def get_identity(self, identity_id: str) -> Optional[Identity]:
        return self._identity(identity_id)

    async def get_identity_by_email(self, email: str) -> Optional[Identity]:
        return self._identity(self._by_email.get(email))

    async def get_identity_by_lookup(self, lookup: str) -> Optional[Identity]:
        return self._identity(self._by_lookup.get(lookup))

    async def replace_credential(
        self,
        identity_id: str,
        credential_hash: bytes,
        credential_lookup: str,
        credential_ciphertext: Optional[bytes],
        updated_at: datetime,
    ) -> Optional[Identity]:
        current = self._identities.get(identity_id)
        if current is None:
            return None
        owner = self._by_lookup.get(credential_lookup)
        if owner is not None and owner != identity_id:
            raise DuplicateKeyError("credential_lookup")
        updated = current.model_copy(update={
            "credential_hash": credential_hash,
            "credential_lookup": credential_lookup,
            "credential_ciphertext": credential_ciphertext,
            "updated_at": updated_at,
        })
        del self._by_lookup[current.credential_lookup]
        self._by_lookup[credential_lookup] = identity_id
        self._identities[identity_id] = updated
        return updated.model_copy()

    async def delete_identity(self, identity_id: str) -> bool:
        identity = self._identities.pop(identity_id, None)
        if identity is None:
            return False
        del self._by_email[identity.email]
        del self._by_lookup[identity.credential_lookup]
        for key in [k for k in self._secrets if k[0] == identity_id]:
            del self._secrets[key]
        return True

    async def insert_secret(self, record: SecretRecord) -> None:
        if record.identity_id not in self._identities:
            raise IdentityNotFound(record.identity_id)
        key = (record.identity_id, record.provider)
        if key in self._secrets:
            raise DuplicateKeyError("identity_provider")
        self._secrets[key] = record.model_copy()

    async def get_secret(
        self, identity_id: str, provider: Provider
    ) -> Optional[SecretRecord]:
        record = self._secrets.get((identity_id, provider))
        return record.model_copy() if record else None

    async def touch_secret(
        self, identity_id: str, provider: Provider, when: datetime
    ) -> bool:
        key = (identity_id, provider)
        record = self._secrets.get(key)
        if record is None:
            return False
        self._secrets[key] = record.model_copy(update={"last_used": when})
        return True

    async def update_secret(
        self,
        identity_id: str,
        provider: Provider,
        ciphertext: bytes,
        updated_at: datetime,
    ) -> Optional[SecretRecord]:
        key = (identity_id, provider)
        record = self._secrets.get(key)
        if record is None:
            return None
        updated = record.model_copy(
            update={"ciphertext": ciphertext, "updated_at": updated_at}
        )
        self._secrets[key] = updated
        return updated.model_copy()

    async def delete_secret(self, identity_id: str, provider: Provider) -> bool:
        return self._secrets.pop((identity_id, provider), None) is not None

    async def list_secrets(self, identity_id: str) -> list[SecretRecord]:
        records = [
            r.model_copy() for (owner, _), r in self._secrets.items()
            if owner == identity_id
        ]
        return sorted(records, key=lambda r: r.provider.value)
