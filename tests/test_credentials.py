"""Tests for CredentialIssuer."""
import re
import statistics
import time

import pytest

from apikey_vault.credentials import CredentialIssuer


@pytest.fixture
def issuer():
    return CredentialIssuer(rounds=4)


class TestMint:
    """Tests for credential generation."""

    def test_format(self, issuer):
        """Test credentials are the prefix plus 64 hex chars."""
        raw, _ = issuer.mint()
        assert re.fullmatch(r"ak_[0-9a-f]{64}", raw)

    def test_unique(self, issuer):
        """Test credentials never repeat."""
        assert len({issuer.generate() for _ in range(200)}) == 200

    def test_hash_is_not_raw(self, issuer):
        """Test the hash is a bcrypt hash, not the credential."""
        raw, hashed = issuer.mint()
        assert raw.encode() not in hashed
        assert hashed.startswith(b"$2b$04$")

    def test_salted(self, issuer):
        """Test hashing the same credential twice gives different hashes."""
        raw = issuer.generate()
        assert issuer.hash(raw) != issuer.hash(raw)

    def test_custom_prefix_and_length(self):
        """Test prefix and entropy are configurable."""
        raw = CredentialIssuer(rounds=4, prefix="kv_", nbytes=48).generate()
        assert raw.startswith("kv_")
        assert len(raw) == 3 + 96


class TestVerify:
    """Tests for credential verification."""

    def test_verifies_own_hash(self, issuer):
        """Test a credential verifies against its own hash."""
        raw, hashed = issuer.mint()
        assert issuer.verify(raw, hashed) is True

    def test_rejects_other_credential(self, issuer):
        """Test another credential does not verify."""
        _, hashed = issuer.mint()
        assert issuer.verify(issuer.generate(), hashed) is False

    def test_rejects_near_misses_at_every_position(self, issuer):
        """Test one changed character is rejected wherever it sits."""
        raw, hashed = issuer.mint()
        for position in (0, 3, len(raw) // 2, len(raw) - 1):
            flipped = "0" if raw[position] != "0" else "1"
            candidate = raw[:position] + flipped + raw[position + 1:]
            assert issuer.verify(candidate, hashed) is False

    def test_rejects_prefix_and_extension(self, issuer):
        """Test truncated and extended credentials are rejected."""
        raw, hashed = issuer.mint()
        assert issuer.verify(raw[:-1], hashed) is False
        assert issuer.verify(raw + "0", hashed) is False

    def test_long_credentials_are_fully_compared(self):
        """Test credentials past bcrypt's 72-byte limit still differ."""
        issuer = CredentialIssuer(rounds=4, nbytes=64)
        raw, hashed = issuer.mint()
        tail_changed = raw[:-1] + ("0" if raw[-1] != "0" else "1")
        assert issuer.verify(raw, hashed) is True
        assert issuer.verify(tail_changed, hashed) is False

    @pytest.mark.parametrize("stored", [b"", b"not-a-hash", b"$2b$04$short"])
    def test_malformed_hash(self, issuer, stored):
        """Test malformed stored hashes verify as False."""
        assert issuer.verify(issuer.generate(), stored) is False

    def test_empty_candidate(self, issuer):
        """Test empty candidates are rejected."""
        _, hashed = issuer.mint()
        assert issuer.verify("", hashed) is False

    def test_uses_bcrypt_checkpw(self, issuer, monkeypatch):
        """Test verification goes through bcrypt's constant-time check."""
        import bcrypt

        calls = []
        real = bcrypt.checkpw

        def spy(password, hashed):
            calls.append(hashed)
            return real(password, hashed)

        monkeypatch.setattr(bcrypt, "checkpw", spy)
        raw, hashed = issuer.mint()
        assert issuer.verify(raw, hashed) is True
        assert calls == [hashed]

    def test_verify_time_does_not_depend_on_mismatch_position(self, issuer):
        """Test near misses at the first and last character cost the same.

        Samples are interleaved so machine load drifts hit both sides
        equally, and medians keep scheduler outliers out.
        """
        raw, hashed = issuer.mint()

        def flip(position):
            flipped = "0" if raw[position] != "0" else "1"
            return raw[:position] + flipped + raw[position + 1:]

        early, late = flip(0), flip(len(raw) - 1)
        issuer.verify(early, hashed)
        timings = {early: [], late: []}
        for _ in range(60):
            for candidate in (early, late):
                started = time.perf_counter()
                assert issuer.verify(candidate, hashed) is False
                timings[candidate].append(time.perf_counter() - started)

        ratio = statistics.median(timings[early]) / statistics.median(timings[late])
        assert 0.5 < ratio < 2.0
