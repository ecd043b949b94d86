"""
Vault error taxonomy.

Every error carries an HTTP-equivalent ``status`` and a ``public_message``
that is safe to hand to a caller. The ``str()`` of an error may hold more
detail and is meant for logs only.
"""
from typing import Optional


class VaultError(Exception):
    """Base Error class."""

    status: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)


class ConfigurationError(RuntimeError):
    """Invalid vault settings. Raised at startup, never per-request."""


class ValidationError(VaultError):
    """Malformed caller input. The message is surfaced verbatim."""

    status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.public_message = message


class InvalidProvider(ValidationError):
    CUSTOM_ERROR_MESSAGE = "Provider must be one of: {}"

    def __init__(self, provider: object, allowed: list[str]):
        super().__init__(self.CUSTOM_ERROR_MESSAGE.format(", ".join(allowed)))
        self.provider = provider


class AuthenticationError(VaultError):
    """No usable bearer credential.

    Subclasses share one status and one public message so a caller cannot
    tell which check failed.
    """

    status = 401
    public_message = "Authentication failed"


class Unauthenticated(AuthenticationError):
    """No credential was presented."""


class InvalidCredential(AuthenticationError):
    """A credential was presented but no identity verifies against it."""


class AlreadyExists(VaultError):
    CUSTOM_ERROR_MESSAGE = "API key for {} already exists"

    status = 409

    def __init__(self, provider: str):
        message = self.CUSTOM_ERROR_MESSAGE.format(provider)
        super().__init__(message)
        self.public_message = message
        self.provider = provider


class NotFound(VaultError):
    CUSTOM_ERROR_MESSAGE = "API key for {} not found"

    status = 404

    def __init__(self, provider: str):
        message = self.CUSTOM_ERROR_MESSAGE.format(provider)
        super().__init__(message)
        self.public_message = message
        self.provider = provider


class IdentityNotFound(VaultError):
    status = 404
    public_message = "User not found"

    def __init__(self, identity_id: str):
        super().__init__(f"Identity {identity_id} not found")
        self.identity_id = identity_id


class DecryptionFailed(VaultError):
    """Ciphertext could not be authenticated or decoded.

    The message is the same whether the key, the data or the bound context
    was wrong.
    """

    def __init__(self):
        super().__init__("Unable to decrypt payload")


class VaultCorrupted(VaultError):
    """A stored record failed to decrypt; needs operator attention."""

    def __init__(self, identity_id: str, provider: str):
        super().__init__(
            f"Stored secret for identity={identity_id} provider={provider} "
            "could not be decrypted"
        )
        self.identity_id = identity_id
        self.provider = provider


class StoreError(VaultError):
    """Base class for persistence-layer failures."""


class DuplicateKeyError(StoreError):
    CUSTOM_ERROR_MESSAGE = "Unique constraint violated on {}"

    def __init__(self, field: str):
        super().__init__(self.CUSTOM_ERROR_MESSAGE.format(field))
        self.field = field
