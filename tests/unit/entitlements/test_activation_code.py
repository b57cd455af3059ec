"""
Unit tests for activation code generation and hashing.
"""
import pytest

from entitlements.domain.activation_code import (
    ACTIVATION_CODE_ALPHABET,
    ACTIVATION_CODE_LENGTH,
    generate_activation_code,
    hash_activation_code,
    looks_like_code_hash,
    verify_activation_code,
)


class TestGenerateActivationCode:
    """Tests for generate_activation_code."""

    def test_format(self):
        """Test codes are fixed-length uppercase alphanumerics."""
        code = generate_activation_code()
        assert len(code) == ACTIVATION_CODE_LENGTH
        assert all(ch in ACTIVATION_CODE_ALPHABET for ch in code)

    def test_codes_differ(self):
        codes = {generate_activation_code() for _ in range(200)}
        assert len(codes) == 200


class TestHashActivationCode:
    """Tests for hashing and verification."""

    def test_hash_is_hex_digest(self):
        digest = hash_activation_code("ABCD1234EFGH5678")
        assert len(digest) == 64
        assert looks_like_code_hash(digest)

    def test_hash_normalizes_case_and_whitespace(self):
        """Test hashing ignores case and surrounding whitespace."""
        assert hash_activation_code(" abcd1234efgh5678\n") == hash_activation_code("ABCD1234EFGH5678")

    def test_verify_round_trip(self):
        """Test every generated code verifies against its own hash only."""
        for _ in range(20):
            code = generate_activation_code()
            other = generate_activation_code()
            stored = hash_activation_code(code)
            assert verify_activation_code(code, stored)
            assert verify_activation_code(code.lower(), stored)
            if other != code:
                assert not verify_activation_code(other, stored)

    @pytest.mark.parametrize(
        "plain, stored",
        [
            ("", hash_activation_code("X")),
            (None, hash_activation_code("X")),
            ("ABCD1234EFGH5678", "not-a-hash"),
            ("ABCD1234EFGH5678", None),
        ],
    )
    def test_verify_fails_closed(self, plain, stored):
        """Test malformed input never verifies."""
        assert verify_activation_code(plain, stored) is False

    def test_looks_like_code_hash(self):
        assert not looks_like_code_hash("ABCD1234EFGH5678")
        assert not looks_like_code_hash(None)
        assert looks_like_code_hash("A" * 64)
