"""
Vault data models.

Stored records (``Identity``, ``SecretRecord``) hold credential material or
ciphertext and never leave the package. The view models serialize with
camelCase aliases and are what callers receive.
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .providers import Provider


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Identity(BaseModel):
    """A registered user. Holds credential material; never serialized out."""

    identity_id: str
    email: str
    credential_hash: bytes = Field(repr=False)
    credential_lookup: str = Field(repr=False)
    credential_ciphertext: Optional[bytes] = Field(default=None, repr=False)
    created_at: datetime
    updated_at: datetime


class SecretRecord(BaseModel):
    """One provider's encrypted secret for one identity."""

    secret_id: str
    identity_id: str
    provider: Provider
    ciphertext: bytes = Field(repr=False)
    last_used: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class _View(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        return self.model_dump(by_alias=True)


class Profile(_View):
    identity_id: str
    email: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_identity(cls, identity: Identity) -> "Profile":
        return cls(
            identity_id=identity.identity_id,
            email=identity.email,
            created_at=identity.created_at,
            updated_at=identity.updated_at,
        )


class RegistrationResult(_View):
    identity_id: str
    email: str
    raw_credential: Optional[str] = Field(default=None, repr=False)
    created: bool


class SecretCreated(_View):
    provider: Provider
    secret_id: str


class SecretValue(_View):
    provider: Provider
    plaintext_secret: str = Field(repr=False)
    last_used: Optional[datetime] = None
    created_at: datetime


class SecretUpdated(_View):
    provider: Provider
    updated_at: datetime


class SecretDeleted(_View):
    provider: Provider
    deleted: bool = True


class SecretSummary(_View):
    """Metadata only. Never includes the ciphertext or the plaintext."""

    provider: Provider
    last_used: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: SecretRecord) -> "SecretSummary":
        return cls(
            provider=record.provider,
            last_used=record.last_used,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
