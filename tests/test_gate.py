"""Tests for AccessGate."""
import asyncio

import pytest

from apikey_vault.exceptions import (
    AuthenticationError,
    InvalidCredential,
    Unauthenticated,
)


class TestAuthenticate:

    async def test_resolves_identity(self, vault):
        """Test a minted credential resolves to its identity."""
        identity, raw, _ = await vault.identities.register_or_fetch("a@x.com")
        assert await vault.gate.authenticate(raw) == identity.identity_id

    async def test_surrounding_whitespace_is_ignored(self, vault):
        identity, raw, _ = await vault.identities.register_or_fetch("a@x.com")
        assert await vault.gate.authenticate(f"  {raw}\n") == identity.identity_id

    @pytest.mark.parametrize("raw", [None, "", "   "])
    async def test_missing_credential(self, vault, raw):
        with pytest.raises(Unauthenticated):
            await vault.gate.authenticate(raw)

    async def test_unknown_credential(self, vault):
        await vault.identities.register_or_fetch("a@x.com")
        with pytest.raises(InvalidCredential):
            await vault.gate.authenticate("ak_" + "0" * 64)

    async def test_near_miss_credential(self, vault):
        """Test a credential one character off is rejected."""
        _, raw, _ = await vault.identities.register_or_fetch("a@x.com")
        candidate = raw[:-1] + ("0" if raw[-1] != "0" else "1")
        with pytest.raises(InvalidCredential):
            await vault.gate.authenticate(candidate)

    async def test_hash_is_checked_after_lookup(self, vault, backend):
        """Test a lookup hit with a non-matching hash is still rejected."""
        identity, raw, _ = await vault.identities.register_or_fetch("a@x.com")
        stored = backend._identities[identity.identity_id]
        backend._identities[identity.identity_id] = stored.model_copy(
            update={"credential_hash": vault.issuer.hash("ak_someone_else")}
        )
        with pytest.raises(InvalidCredential):
            await vault.gate.authenticate(raw)

    async def test_failures_are_indistinguishable(self, vault):
        """Test missing and invalid credentials share status and message."""
        with pytest.raises(AuthenticationError) as missing:
            await vault.gate.authenticate(None)
        with pytest.raises(AuthenticationError) as invalid:
            await vault.gate.authenticate("ak_bogus")
        assert missing.value.status == invalid.value.status == 401
        assert missing.value.public_message == invalid.value.public_message

    async def test_miss_still_runs_one_verification(self, vault, monkeypatch):
        """Test a lookup miss pays for a bcrypt check like a hit does."""
        calls = []
        real = vault.issuer.verify

        def spy(candidate, stored_hash):
            calls.append(candidate)
            return real(candidate, stored_hash)

        monkeypatch.setattr(vault.issuer, "verify", spy)
        with pytest.raises(InvalidCredential):
            await vault.gate.authenticate("ak_bogus")
        assert calls == ["ak_bogus"]

    @pytest.mark.parametrize("raw", ["ak_\udcff", "\ud800" * 8])
    async def test_unencodable_credential(self, vault, monkeypatch, raw):
        """Test surrogate-escaped header bytes get the usual 401 after a bcrypt check."""
        calls = []
        real = vault.issuer.verify

        def spy(candidate, stored_hash):
            calls.append(candidate)
            return real(candidate, stored_hash)

        monkeypatch.setattr(vault.issuer, "verify", spy)
        with pytest.raises(InvalidCredential) as err:
            await vault.gate.authenticate(raw)
        assert err.value.status == 401
        assert len(calls) == 1
        calls[0].encode("utf-8")

    async def test_decoy_is_hashed_once(self, vault, monkeypatch):
        """Test concurrent lookup misses share a single decoy hash."""
        calls = []
        real = vault.issuer.hash

        def spy(raw):
            calls.append(raw)
            return real(raw)

        monkeypatch.setattr(vault.issuer, "hash", spy)
        results = await asyncio.gather(
            *(vault.gate.authenticate(f"ak_bogus{i}") for i in range(5)),
            return_exceptions=True,
        )
        assert all(isinstance(r, InvalidCredential) for r in results)
        assert len(calls) == 1

    async def test_reissued_credential_invalidates_old(self, vault):
        identity, old, _ = await vault.identities.register_or_fetch("a@x.com")
        new = await vault.identities.reissue(identity.identity_id)
        assert await vault.gate.authenticate(new) == identity.identity_id
        with pytest.raises(InvalidCredential):
            await vault.gate.authenticate(old)
