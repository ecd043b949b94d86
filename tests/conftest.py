"""Shared fixtures: a fast vault over the in-memory backend."""
import base64
import secrets

import pytest

from apikey_vault import KeyVault, MemoryBackend, VaultConfig


@pytest.fixture
def master_key():
    """A random 32-byte master key."""
    return secrets.token_bytes(32)


@pytest.fixture
def config(master_key):
    """Vault settings with the cheapest bcrypt cost."""
    return VaultConfig(master_key=master_key, bcrypt_rounds=4)


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def vault(config, backend):
    return KeyVault(config, backend)


@pytest.fixture
def vault_env(monkeypatch, master_key):
    """Populate VAULT_* environment variables."""
    monkeypatch.setenv("VAULT_MASTER_KEY", base64.b64encode(master_key).decode("ascii"))
    monkeypatch.setenv("VAULT_BCRYPT_ROUNDS", "4")
    for name in (
        "VAULT_CIPHER_BACKEND",
        "VAULT_RECOVERABLE_CREDENTIALS",
        "VAULT_CREDENTIAL_PREFIX",
    ):
        monkeypatch.delenv(name, raising=False)
    return master_key
