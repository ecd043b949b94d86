"""
IdentityStore — registration, lookup and credential lifecycle of identities.

An identity is keyed by its normalized email. Its credential is persisted as
a bcrypt hash plus a keyed fingerprint for lookup. When credentials are
recoverable, an encrypted copy is kept too so that registering again hands
back the same credential.

Security Note:
    Never log emails together with credentials, nor any credential material.
"""
import re
import uuid
import asyncio
import logging
from typing import Optional

from .credentials import CredentialIssuer
from .crypto import SecretCipher
from .exceptions import (
    DecryptionFailed,
    DuplicateKeyError,
    IdentityNotFound,
    ValidationError,
)
from .models import Identity, utcnow
from .storage import StorageBackend

logger = logging.getLogger("apikey_vault")

_EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")
_MAX_EMAIL_LENGTH = 254


def normalize_email(email: object) -> str:
    """Strip and lower-case an email address, rejecting malformed input.

    Raises:
        ValidationError: If the value is not a plausible email address.
    """
    if not isinstance(email, str):
        raise ValidationError("Please provide a valid email")
    normalized = email.strip().lower()
    if len(normalized) > _MAX_EMAIL_LENGTH or not _EMAIL_PATTERN.match(normalized):
        raise ValidationError("Please provide a valid email")
    try:
        normalized.encode("utf-8")
    except UnicodeEncodeError:
        raise ValidationError("Please provide a valid email") from None
    return normalized


def _credential_context(identity_id: str) -> str:
    return f"credential:{identity_id}"


class IdentityStore:
    """Maps emails to identities; one identity per email, one credential each."""

    def __init__(
        self,
        backend: StorageBackend,
        issuer: CredentialIssuer,
        cipher: SecretCipher,
        recoverable_credentials: bool = True,
    ):
        self._backend = backend
        self._issuer = issuer
        self._cipher = cipher
        self._recoverable = recoverable_credentials

    async def _mint(self, identity_id: str) -> tuple[str, bytes, str, Optional[bytes]]:
        """Mint a credential and everything that gets stored for it."""
        raw, credential_hash = await asyncio.to_thread(self._issuer.mint)
        lookup = self._cipher.fingerprint(raw)
        ciphertext = None
        if self._recoverable:
            ciphertext = self._cipher.encrypt(raw, _credential_context(identity_id))
        return raw, credential_hash, lookup, ciphertext

    def _recover(self, identity: Identity) -> Optional[str]:
        """Return the stored credential of an identity, when one is kept."""
        if not self._recoverable or identity.credential_ciphertext is None:
            return None
        try:
            return self._cipher.decrypt(
                identity.credential_ciphertext,
                _credential_context(identity.identity_id),
            )
        except DecryptionFailed:
            logger.error(
                "Stored credential for identity=%s could not be decrypted",
                identity.identity_id,
            )
            return None

    async def register_or_fetch(
        self, email: str
    ) -> tuple[Identity, Optional[str], bool]:
        """Register an email, or return the identity already holding it.

        Args:
            email: Email address; normalized before use.

        Returns:
            Tuple of (identity, raw_credential, created). ``raw_credential``
            is the freshly minted credential when ``created`` is True, the
            recovered one for an existing identity when credentials are
            recoverable, and None otherwise.

        Raises:
            ValidationError: If the email is malformed.
        """
        normalized = normalize_email(email)
        existing = await self._backend.get_identity_by_email(normalized)
        if existing is not None:
            logger.debug("Registration for existing identity=%s", existing.identity_id)
            return existing, self._recover(existing), False

        identity_id = uuid.uuid4().hex
        raw, credential_hash, lookup, ciphertext = await self._mint(identity_id)
        now = utcnow()
        identity = Identity(
            identity_id=identity_id,
            email=normalized,
            credential_hash=credential_hash,
            credential_lookup=lookup,
            credential_ciphertext=ciphertext,
            created_at=now,
            updated_at=now,
        )
        try:
            await self._backend.insert_identity(identity)
        except DuplicateKeyError as err:
            if err.field != "email":
                raise
            # lost a registration race: the other insert owns this email
            winner = await self._backend.get_identity_by_email(normalized)
            if winner is None:
                raise
            logger.warning(
                "Concurrent registration resolved to identity=%s",
                winner.identity_id,
            )
            return winner, self._recover(winner), False

        logger.info("Registered identity=%s", identity_id)
        return identity, raw, True

    async def find_by_email(self, email: str) -> Optional[Identity]:
        return await self._backend.get_identity_by_email(normalize_email(email))

    async def find_by_credential(self, raw_credential: str) -> Optional[Identity]:
        """Candidate identity for a credential, by exact fingerprint match."""
        lookup = self._cipher.fingerprint(raw_credential)
        return await self._backend.get_identity_by_lookup(lookup)

    async def get_profile(self, identity_id: str) -> Identity:
        """Return an identity by id.

        Raises:
            IdentityNotFound: If no such identity exists.
        """
        identity = await self._backend.get_identity(identity_id)
        if identity is None:
            raise IdentityNotFound(identity_id)
        return identity

    async def reissue(self, identity_id: str) -> str:
        """Replace the credential of an identity; the old one stops verifying.

        Returns:
            The new raw credential.

        Raises:
            IdentityNotFound: If no such identity exists.
        """
        raw, credential_hash, lookup, ciphertext = await self._mint(identity_id)
        updated = await self._backend.replace_credential(
            identity_id, credential_hash, lookup, ciphertext, utcnow(),
        )
        if updated is None:
            raise IdentityNotFound(identity_id)
        logger.info("Reissued credential for identity=%s", identity_id)
        return raw

    async def remove(self, identity_id: str) -> None:
        """Delete an identity together with all of its secrets.

        Raises:
            IdentityNotFound: If no such identity exists.
        """
        if not await self._backend.delete_identity(identity_id):
            raise IdentityNotFound(identity_id)
        logger.info("Removed identity=%s and its secrets", identity_id)
