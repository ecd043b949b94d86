"""
Vault Crypto Core — Key derivation, secret encryption and credential fingerprints.

- Secret layer: HKDF(master_key, "vault-secret-v1") → AEAD → [version|nonce|payload]
- Lookup layer: HKDF(master_key, "vault-credential-lookup-v1") → HMAC-SHA256

Security Note:
    Never log plaintext or ciphertext values.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import hmac
import hashlib
import logging
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from .config import MIN_MASTER_KEY_LENGTH
from .exceptions import ConfigurationError, DecryptionFailed

logger = logging.getLogger("apikey_vault")

FORMAT_VERSION = 1
VERSION_SIZE = 1
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256

_SECRET_CONTEXT = "vault-secret-v1"
_LOOKUP_CONTEXT = "vault-credential-lookup-v1"

_CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


def derive_key(seed: bytes, context: str) -> bytes:
    """HKDF-SHA256 subkey of ``seed`` for one purpose.

    Each ``context`` label (``vault-secret-v1``, ``vault-credential-lookup-v1``)
    yields an independent 32-byte key, so the AEAD key and the lookup HMAC
    key never coincide.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,  # deterministic: the same master key must always yield the same subkeys
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


class SecretCipher:
    """Authenticated encryption of secret payloads under the master key.

    Blob format: [format version 1B][nonce 12B][encrypted_payload + tag 16B].

    An optional ``context`` string is bound to the blob as associated data;
    decrypting with a different context fails exactly like a wrong key.
    """

    def __init__(self, master_key: bytes, backend: str = "aesgcm"):
        if not isinstance(master_key, (bytes, bytearray)):
            raise ConfigurationError("Master key must be bytes")
        if len(master_key) < MIN_MASTER_KEY_LENGTH:
            raise ConfigurationError(
                f"Master key must be at least {MIN_MASTER_KEY_LENGTH} bytes, "
                f"got {len(master_key)}"
            )
        try:
            cipher_cls = _CIPHERS[backend.lower()]
        except KeyError:
            raise ConfigurationError(
                f"Unsupported cipher backend: {backend}"
            ) from None
        self.backend = backend.lower()
        self._aead = cipher_cls(derive_key(bytes(master_key), _SECRET_CONTEXT))
        self._lookup_key = derive_key(bytes(master_key), _LOOKUP_CONTEXT)

    def __repr__(self) -> str:
        return f"<SecretCipher backend={self.backend}>"

    def encrypt(self, plaintext: str, context: str = "") -> bytes:
        """Encrypt a secret with a fresh random nonce.

        Args:
            plaintext: Secret text to encrypt.
            context: Associated data the blob is bound to.

        Returns:
            Ciphertext blob.
        """
        nonce = os.urandom(NONCE_SIZE)
        ct = self._aead.encrypt(
            nonce, plaintext.encode("utf-8"), context.encode("utf-8"),
        )
        return bytes([FORMAT_VERSION]) + nonce + ct

    def decrypt(self, blob: Union[bytes, bytearray, memoryview], context: str = "") -> str:
        """Decrypt a blob produced by :meth:`encrypt`.

        Args:
            blob: Ciphertext in format [version 1B][nonce 12B][payload+tag].
            context: Associated data the blob was bound to.

        Returns:
            Decrypted plaintext.

        Raises:
            DecryptionFailed: For truncated, malformed or tampered blobs, a
                different master key, or a mismatched context.
        """
        if not isinstance(blob, (bytes, bytearray, memoryview)):
            raise DecryptionFailed()
        blob = bytes(blob)
        if len(blob) < VERSION_SIZE + NONCE_SIZE + TAG_SIZE:
            raise DecryptionFailed()
        if blob[0] != FORMAT_VERSION:
            raise DecryptionFailed()
        nonce = blob[VERSION_SIZE:VERSION_SIZE + NONCE_SIZE]
        ct = blob[VERSION_SIZE + NONCE_SIZE:]
        try:
            plaintext = self._aead.decrypt(nonce, ct, context.encode("utf-8"))
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError):
            raise DecryptionFailed() from None

    def fingerprint(self, value: str) -> str:
        """Return the keyed HMAC-SHA256 fingerprint of ``value`` as hex.

        Deterministic for a given master key, so it can back an exact-match
        unique index without storing ``value`` itself.
        """
        return hmac.new(
            self._lookup_key, value.encode("utf-8"), hashlib.sha256,
        ).hexdigest()
