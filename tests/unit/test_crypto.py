"""Unit tests for deterministic field encryption.

Tests round-trips, determinism, envelope detection and decrypt fallbacks.
"""

import hashlib

import pytest
from prometheus_client import REGISTRY

from rentalsync.shared.crypto import (
    DecryptStatus,
    FieldCipher,
    decrypt,
    decrypt_field,
    encrypt,
    is_encrypted,
)
from rentalsync.shared.exceptions import ConfigurationError, InvalidPlaintextError

# Ciphertext is not a whole number of AES blocks, so the cipher must reject it
TRUNCATED_ENVELOPE = "00" * 16 + ":abcd"


class TestRoundTrip:
    """Test encrypt/decrypt round trips."""

    @pytest.mark.parametrize(
        "plaintext",
        ["Nguyễn Văn A", "0901234567", "Áo Dài Đỏ thêu hoa sen", "", "a:b", "x" * 1000],
    )
    def test_decrypt_returns_original(self, cipher, plaintext):
        """Test that decrypt(encrypt(s)) == s, Vietnamese and empty included."""
        assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext

    def test_output_is_lowercase_hex_envelope(self, cipher):
        """Test the iv:cipher wire format."""
        encrypted = cipher.encrypt("Quần Tây")
        iv_hex, cipher_hex = encrypted.split(":")

        assert len(iv_hex) == 32
        assert len(cipher_hex) % 32 == 0
        assert encrypted == encrypted.lower()
        assert is_encrypted(encrypted) is True

    def test_empty_string_encrypts_to_one_block(self, cipher):
        """Test that PKCS7 pads the empty string to a full block."""
        _, cipher_hex = cipher.encrypt("").split(":")

        assert len(cipher_hex) == 32


class TestDeterminism:
    """Test that equal plaintexts give equal ciphertexts."""

    def test_same_plaintext_same_ciphertext(self, cipher):
        assert cipher.encrypt("0901234567") == cipher.encrypt("0901234567")

    def test_different_plaintexts_differ(self, cipher):
        assert cipher.encrypt("0901234567") != cipher.encrypt("0901234568")

    def test_iv_is_derived_from_plaintext_and_key_hex(self, cipher):
        """Test IV = first 16 bytes of SHA-256(plaintext + key hex)."""
        key_hex = "0123456789abcdef" * 4
        expected_iv = hashlib.sha256(("Văn Nghệ" + key_hex).encode("utf-8")).digest()[:16]

        iv_hex, _ = cipher.encrypt("Văn Nghệ").split(":")

        assert iv_hex == expected_iv.hex()

    def test_separate_instances_agree(self, cipher):
        """Test that two ciphers with the same key produce identical output."""
        other = FieldCipher("0123456789abcdef" * 4)

        assert other.encrypt("Giầy") == cipher.encrypt("Giầy")
        assert other.decrypt(cipher.encrypt("Giầy")) == "Giầy"

    def test_other_key_gives_other_ciphertext(self, cipher):
        other = FieldCipher("fedcba9876543210" * 4)

        assert other.encrypt("Giầy") != cipher.encrypt("Giầy")


class TestEncryptValidation:
    """Test encrypt input checks."""

    @pytest.mark.parametrize("value", [None, 42, b"bytes", ["a"]])
    def test_non_string_raises(self, cipher, value):
        with pytest.raises(InvalidPlaintextError) as exc_info:
            cipher.encrypt(value)

        assert exc_info.value.details["received_type"] == type(value).__name__

    def test_invalid_plaintext_is_type_error(self, cipher):
        """Test that callers catching TypeError still see the error."""
        with pytest.raises(TypeError):
            cipher.encrypt(None)


class TestKeyValidation:
    """Test key material checks."""

    def test_non_hex_key_raises(self):
        with pytest.raises(ConfigurationError):
            FieldCipher("z" * 64)

    def test_short_key_raises(self):
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCipher("00" * 16)

        assert exc_info.value.details["key_bytes"] == 16


class TestDecryptFallback:
    """Test that decrypt never raises for str input."""

    @pytest.mark.parametrize("value", ["Nguyễn Văn A", "a:b:c", "xyz:abc", "plain text"])
    def test_plaintext_returned_unchanged(self, cipher, value):
        assert cipher.decrypt(value) == value

    def test_empty_string_returned_unchanged(self, cipher):
        assert cipher.decrypt("") == ""

    def test_hex_lookalike_returned_unchanged(self, cipher):
        """Test the known false positive: "ab:cd" looks encrypted but is not."""
        assert is_encrypted("ab:cd") is True
        assert cipher.decrypt("ab:cd") == "ab:cd"

    def test_undecryptable_envelope_returned_unchanged(self, cipher):
        assert cipher.decrypt(TRUNCATED_ENVELOPE) == TRUNCATED_ENVELOPE

    def test_try_decrypt_reports_status(self, cipher):
        """Test that try_decrypt distinguishes the three outcomes."""
        assert cipher.try_decrypt(cipher.encrypt("Áo")).status is DecryptStatus.DECRYPTED
        assert cipher.try_decrypt("Áo").status is DecryptStatus.PLAINTEXT

        result = cipher.try_decrypt(TRUNCATED_ENVELOPE)
        assert result.status is DecryptStatus.UNDECRYPTABLE
        assert result.undecryptable is True
        assert result.value == TRUNCATED_ENVELOPE

    def test_undecryptable_value_is_counted(self, cipher):
        """Test that decrypt fallbacks show up in the metric."""
        before = REGISTRY.get_sample_value("field_decrypt_failures_total") or 0.0

        cipher.decrypt(TRUNCATED_ENVELOPE)

        after = REGISTRY.get_sample_value("field_decrypt_failures_total")
        assert after == before + 1


class TestIsEncrypted:
    """Test the envelope heuristic."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("ab:cd", True),
            ("ABCDEF:0123", True),
            ("a:b:c", False),
            ("abc", False),
            (":abcd", False),
            ("abcd:", False),
            ("xyz:abcd", False),
            ("", False),
            (None, False),
            (1234, False),
        ],
    )
    def test_detection(self, value, expected):
        assert is_encrypted(value) is expected


class TestModuleFunctions:
    """Test the settings-backed helpers."""

    def test_round_trip_with_configured_key(self):
        encrypted = encrypt("Đầm Dạ Hội")

        assert decrypt(encrypted) == "Đầm Dạ Hội"
        assert decrypt_field(encrypted) == "Đầm Dạ Hội"

    def test_decrypt_field_passes_legacy_plaintext(self):
        assert decrypt_field("Nguyễn Văn A") == "Nguyễn Văn A"
        assert decrypt_field(TRUNCATED_ENVELOPE) == TRUNCATED_ENVELOPE
