"""
Vault Configuration — Master key loading and validated settings.

Reads settings from environment variables:
    VAULT_MASTER_KEY = <base64-encoded key, at least 32 bytes>
    VAULT_CIPHER_BACKEND = aesgcm | chacha20
    VAULT_BCRYPT_ROUNDS = <int, 4..31>
    VAULT_RECOVERABLE_CREDENTIALS = true | false
    VAULT_CREDENTIAL_PREFIX = <str>

Security Note:
    Never log key material. Only log lengths and backend names.
"""
import os
import base64
import binascii
import secrets
import logging

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

logger = logging.getLogger("apikey_vault")

MIN_MASTER_KEY_LENGTH = 32

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def load_master_key() -> bytes:
    """Load the master key from the VAULT_MASTER_KEY environment variable.

    The value must be base64-encoded and decode to at least 32 bytes.

    Returns:
        Raw master key bytes.

    Raises:
        ConfigurationError: If the variable is missing, not base64, or
            decodes to fewer than 32 bytes.
    """
    raw = os.environ.get("VAULT_MASTER_KEY")
    if not raw:
        raise ConfigurationError(
            "No vault master key found in environment. "
            "Set VAULT_MASTER_KEY=<base64-encoded-32-byte-key>"
        )
    try:
        key_bytes = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as err:
        raise ConfigurationError(
            "VAULT_MASTER_KEY is not valid base64"
        ) from err
    if len(key_bytes) < MIN_MASTER_KEY_LENGTH:
        raise ConfigurationError(
            f"VAULT_MASTER_KEY must decode to at least {MIN_MASTER_KEY_LENGTH} "
            f"bytes, got {len(key_bytes)}"
        )
    logger.debug("Loaded vault master key (%d bytes)", len(key_bytes))
    return key_bytes


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def generate_master_key() -> str:
    """Fresh value for ``VAULT_MASTER_KEY``: 32 CSPRNG bytes, base64 encoded."""
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    master_key: bytes
    cipher_backend: str = Field(default="aesgcm")
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    recoverable_credentials: bool = Field(default=True)
    credential_prefix: str = Field(default="ak_", max_length=16)
    credential_bytes: int = Field(default=32, ge=16, le=64)

    model_config = {"frozen": True}

    @field_validator("master_key")
    @classmethod
    def validate_master_key(cls, v: bytes) -> bytes:
        """Reject master keys shorter than 32 bytes."""
        if len(v) < MIN_MASTER_KEY_LENGTH:
            raise ValueError(
                f"master_key must be at least {MIN_MASTER_KEY_LENGTH} bytes, "
                f"got {len(v)}"
            )
        return v

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in ("aesgcm", "chacha20"):
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    def __repr__(self) -> str:
        return (
            f"VaultConfig(cipher_backend={self.cipher_backend!r}, "
            f"bcrypt_rounds={self.bcrypt_rounds}, "
            f"recoverable_credentials={self.recoverable_credentials})"
        )

    __str__ = __repr__

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.

        Raises:
            ConfigurationError: If any setting is missing or invalid.
        """
        master_key = load_master_key()
        settings = {
            "master_key": master_key,
            "cipher_backend": os.environ.get("VAULT_CIPHER_BACKEND", "aesgcm"),
            "recoverable_credentials": _env_bool(
                "VAULT_RECOVERABLE_CREDENTIALS", True
            ),
        }
        rounds = os.environ.get("VAULT_BCRYPT_ROUNDS")
        if rounds is not None:
            settings["bcrypt_rounds"] = rounds
        prefix = os.environ.get("VAULT_CREDENTIAL_PREFIX")
        if prefix is not None:
            settings["credential_prefix"] = prefix
        try:
            config = cls(**settings)
        except ValidationError as err:
            # pydantic echoes input values; keep key material out of the message
            fields = sorted({str(e["loc"][0]) for e in err.errors() if e["loc"]})
            raise ConfigurationError(
                f"Invalid vault configuration: {', '.join(fields)}"
            ) from None
        logger.info("Vault configuration loaded: %s", config)
        return config
