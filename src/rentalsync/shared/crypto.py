"""Deterministic field encryption for searchable columns.

Sensitive text is stored as ``ivHex:cipherHex`` using AES-256-CBC. The IV is
derived from SHA-256(plaintext + key), so the same plaintext always produces
the same ciphertext under one key. That is what lets the back office run
equality lookups (``WHERE phone = encrypt(:phone)``) on encrypted columns,
at the cost of revealing which stored values are equal.

Decryption is deliberately forgiving: rows written before encryption was
introduced hold plain text and must stay readable, so anything that does not
decrypt is returned as-is instead of raising.
"""

import enum
import hashlib
import re
from dataclasses import dataclass
from functools import lru_cache

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from rentalsync.config import get_settings
from rentalsync.observability.metrics import FIELD_DECRYPT_FAILURES
from rentalsync.shared.exceptions import ConfigurationError, InvalidPlaintextError
from rentalsync.shared.logging import get_logger

logger = get_logger(__name__)

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_IV_SIZE = 16
_KEY_SIZE = 32


class DecryptStatus(str, enum.Enum):
    """Outcome of a decrypt attempt."""

    DECRYPTED = "decrypted"
    PLAINTEXT = "plaintext"  # Not in iv:cipher form, returned unchanged
    UNDECRYPTABLE = "undecryptable"  # Looked encrypted but the cipher rejected it


@dataclass(frozen=True)
class DecryptResult:
    value: str
    status: DecryptStatus

    @property
    def undecryptable(self) -> bool:
        return self.status is DecryptStatus.UNDECRYPTABLE


def is_encrypted(value: object) -> bool:
    """Check if a value has the ``hex:hex`` envelope of an encrypted field.

    This is a heuristic, not a tag: plain text such as ``"ab:cd"`` or
    ``"cafe:babe"`` is reported as encrypted too.
    """
    if not value or not isinstance(value, str):
        return False
    parts = value.split(":")
    if len(parts) != 2:
        return False
    return bool(_HEX_RE.match(parts[0]) and _HEX_RE.match(parts[1]))


class FieldCipher:
    """AES-256-CBC with a plaintext-derived IV."""

    def __init__(self, key_hex: str) -> None:
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as e:
            raise ConfigurationError("ENCRYPTION_KEY is not valid hex") from e
        if len(key) != _KEY_SIZE:
            raise ConfigurationError(
                f"ENCRYPTION_KEY must decode to {_KEY_SIZE} bytes, got {len(key)}",
                details={"key_bytes": len(key)},
            )
        self._key = key
        # The hex text (not the raw bytes) is mixed into the IV hash so that
        # ciphertext written by the other service stays byte-identical.
        self._key_hex = key_hex

    def _derive_iv(self, plaintext: str) -> bytes:
        return hashlib.sha256((plaintext + self._key_hex).encode("utf-8")).digest()[:_IV_SIZE]

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string to ``ivHex:cipherHex``.

        Raises:
            InvalidPlaintextError: If plaintext is not a str (None included).
        """
        if not isinstance(plaintext, str):
            raise InvalidPlaintextError(plaintext)

        iv = self._derive_iv(plaintext)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def try_decrypt(self, value: str) -> DecryptResult:
        """Decrypt and report whether the value was actually decrypted."""
        if not is_encrypted(value):
            return DecryptResult(value, DecryptStatus.PLAINTEXT)

        iv_hex, cipher_hex = value.split(":")
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(cipher_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except ValueError as e:
            # UnicodeDecodeError is a ValueError too
            FIELD_DECRYPT_FAILURES.inc()
            logger.warning(
                "field_decrypt_failed",
                length=len(value),
                error_type=type(e).__name__,
            )
            return DecryptResult(value, DecryptStatus.UNDECRYPTABLE)

        return DecryptResult(plaintext, DecryptStatus.DECRYPTED)

    def decrypt(self, value: str) -> str:
        """Decrypt ``ivHex:cipherHex``; anything else comes back unchanged.

        Never raises for str input.
        """
        if not value:
            return value
        return self.try_decrypt(value).value


@lru_cache(maxsize=1)
def get_field_cipher() -> FieldCipher:
    """Get the process-wide cipher built from ENCRYPTION_KEY."""
    return FieldCipher(get_settings().encryption_key)


def encrypt(plaintext: str) -> str:
    """Encrypt a single field value with the configured key."""
    return get_field_cipher().encrypt(plaintext)


def decrypt(value: str) -> str:
    """Decrypt a single field value with the configured key."""
    return get_field_cipher().decrypt(value)


def decrypt_field(value: str) -> str:
    """Decrypt only when the value looks encrypted (legacy rows hold plain text)."""
    if is_encrypted(value):
        return decrypt(value)
    return value
