"""AccessGate: resolves a presented bearer credential to an identity id."""
import asyncio
import logging
import secrets
from typing import Optional

from .credentials import CredentialIssuer
from .exceptions import InvalidCredential, Unauthenticated
from .identity import IdentityStore

logger = logging.getLogger("apikey_vault")


def _encodable(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


class AccessGate:
    """Authenticates requests.

    The candidate identity is found through the credential fingerprint
    index, then the bcrypt hash is verified. A lookup miss still pays for
    one bcrypt check against a throwaway hash, so both rejection paths take
    about the same time.
    """

    def __init__(self, identities: IdentityStore, issuer: CredentialIssuer):
        self._identities = identities
        self._issuer = issuer
        self._decoy_hash: Optional[bytes] = None
        self._decoy_lock = asyncio.Lock()

    async def _decoy(self) -> bytes:
        async with self._decoy_lock:
            if self._decoy_hash is None:
                self._decoy_hash = await asyncio.to_thread(
                    self._issuer.hash, secrets.token_hex(16),
                )
        return self._decoy_hash

    async def authenticate(self, raw_credential: Optional[str]) -> str:
        """Return the identity id owning ``raw_credential``.

        Raises:
            Unauthenticated: No credential was presented.
            InvalidCredential: The credential does not verify for any identity.
        """
        if raw_credential is None or not str(raw_credential).strip():
            raise Unauthenticated("No credential presented")
        candidate = str(raw_credential).strip()

        identity = None
        if _encodable(candidate):
            identity = await self._identities.find_by_credential(candidate)
        else:
            # headers decoded with surrogateescape; hash a stand-in instead
            candidate = self._issuer.generate()
        if identity is None:
            await asyncio.to_thread(
                self._issuer.verify, candidate, await self._decoy(),
            )
            logger.warning("Rejected credential: no matching identity")
            raise InvalidCredential("Credential did not match any identity")

        verified = await asyncio.to_thread(
            self._issuer.verify, candidate, identity.credential_hash,
        )
        if not verified:
            logger.warning(
                "Rejected credential: hash mismatch for identity=%s",
                identity.identity_id,
            )
            raise InvalidCredential("Credential did not verify")
        return identity.identity_id
