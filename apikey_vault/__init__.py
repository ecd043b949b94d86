"""API Key Vault — Per-user encrypted storage of provider API keys.

Security Note (Threat Model):
    Provider secrets are decrypted in process memory only while a request
    reads them. Bearer credentials are verified against bcrypt hashes; a
    copy encrypted under the master key is kept only when credentials are
    configured as recoverable. Anyone holding the master key and the
    database can recover every secret. HSM integration is out of scope.
"""

from .config import VaultConfig, generate_master_key, load_master_key
from .credentials import CredentialIssuer
from .crypto import SecretCipher
from .exceptions import (
    AlreadyExists,
    AuthenticationError,
    ConfigurationError,
    DecryptionFailed,
    IdentityNotFound,
    InvalidCredential,
    InvalidProvider,
    NotFound,
    Unauthenticated,
    ValidationError,
    VaultCorrupted,
    VaultError,
)
from .gate import AccessGate
from .identity import IdentityStore
from .providers import Provider
from .service import KeyVault
from .storage import MemoryBackend, StorageBackend
from .vault import VaultStore
from .version import __version__

__all__ = [
    "KeyVault",
    "VaultConfig",
    "load_master_key",
    "generate_master_key",
    "SecretCipher",
    "CredentialIssuer",
    "IdentityStore",
    "AccessGate",
    "VaultStore",
    "Provider",
    "StorageBackend",
    "MemoryBackend",
    "VaultError",
    "ConfigurationError",
    "ValidationError",
    "InvalidProvider",
    "AuthenticationError",
    "Unauthenticated",
    "InvalidCredential",
    "AlreadyExists",
    "NotFound",
    "IdentityNotFound",
    "DecryptionFailed",
    "VaultCorrupted",
    "__version__",
]
