"""
Credential issuance: bearer tokens and their bcrypt verification hash.

Security Note:
    The raw credential leaves this module exactly once, from ``mint()``.
    Never log raw credentials or hashes.
"""
import base64
import hashlib
import secrets

import bcrypt


class CredentialIssuer:
    """Mints opaque bearer credentials and verifies them against stored hashes.

    Credentials look like ``ak_<64 hex chars>``: the prefix followed by
    ``nbytes`` bytes from the OS CSPRNG.
    """

    def __init__(self, rounds: int = 12, prefix: str = "ak_", nbytes: int = 32):
        self.rounds = rounds
        self.prefix = prefix
        self.nbytes = nbytes

    @staticmethod
    def _prehash(raw: str) -> bytes:
        # bcrypt only reads the first 72 bytes of its input
        digest = hashlib.sha256(raw.encode("utf-8")).digest()
        return base64.b64encode(digest)

    def generate(self) -> str:
        """Return a fresh raw credential."""
        return f"{self.prefix}{secrets.token_hex(self.nbytes)}"

    def hash(self, raw: str) -> bytes:
        """Return the salted bcrypt hash of a raw credential."""
        return bcrypt.hashpw(self._prehash(raw), bcrypt.gensalt(rounds=self.rounds))

    def mint(self) -> tuple[str, bytes]:
        """Generate a credential and its verification hash.

        Returns:
            Tuple of (raw_credential, verification_hash).
        """
        raw = self.generate()
        return raw, self.hash(raw)

    def verify(self, candidate: str, stored_hash: bytes) -> bool:
        """Check a candidate credential against a stored hash.

        ``bcrypt.checkpw`` recomputes the full hash and compares it in
        constant time, so the result does not depend on where the first
        mismatching byte sits.

        Returns:
            True if the candidate matches, False otherwise, including when
            the stored hash is malformed.
        """
        if not candidate or not stored_hash:
            return False
        try:
            return bcrypt.checkpw(self._prehash(candidate), bytes(stored_hash))
        except ValueError:
            return False
