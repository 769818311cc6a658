"""
Unit tests for the Field Encryption module.

Tests:
- AES-128-CTR fixed vectors
- Output layout [iv | ciphertext]
- Fresh IV per call
- Device-side decryption of UTF-8 and empty values
"""

import inspect
import os
from unittest.mock import patch

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from fieldcrypt.core_crypto.codec import decode_base64
from fieldcrypt.core_crypto.errors import CipherBackendFailure, InvalidKeyFormat
from fieldcrypt.exchange.key_derivation import SymmetricKey
from fieldcrypt.fields.field_cipher import (
    FIELD_VALUE_INVALID_MESSAGE,
    IV_SIZE,
    EncryptedField,
    FieldEncryptor,
    encrypt_field,
    generate_iv,
)


# NIST SP 800-38A, F.5.1 (CTR-AES128.Encrypt)
NIST_KEY = bytes.fromhex("2b7e151628aed2a6abf7158809cf4f3c")
NIST_COUNTER = bytes.fromhex("f0f1f2f3f4f5f6f7f8f9fafbfcfdfeff")
NIST_PLAINTEXT = bytes.fromhex(
    "6bc1bee22e409f96e93d7e117393172a"
    "ae2d8a571e03ac9c9eb76fac45af8e51"
)
NIST_CIPHERTEXT = bytes.fromhex(
    "874d6191b620e3261bef6864990db6ce"
    "9806f66b7970fdff8617187bb9fffdff"
)


def device_decrypt(key: bytes, data: bytes) -> bytes:
    """What the device does: first 16 bytes are the counter block."""
    iv, ciphertext = data[:IV_SIZE], data[IV_SIZE:]
    decryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).decryptor()
    return decryptor.update(ciphertext) + decryptor.finalize()


class TestFixedVectors:
    """Regression tests against known AES-128-CTR outputs."""

    def test_hello_vector(self):
        """"hello" under the NIST key and counter."""
        with patch("fieldcrypt.fields.field_cipher.generate_iv", return_value=NIST_COUNTER):
            encrypted = encrypt_field(NIST_KEY, "hello")

        output = encrypted.to_bytes()
        assert len(output) == 21
        assert output == NIST_COUNTER + bytes.fromhex("84e9b31ff7")

    def test_nist_two_blocks(self):
        with patch("fieldcrypt.fields.field_cipher.generate_iv", return_value=NIST_COUNTER):
            encrypted = encrypt_field(NIST_KEY, NIST_PLAINTEXT)
        assert encrypted.iv == NIST_COUNTER
        assert encrypted.ciphertext == NIST_CIPHERTEXT

    def test_counter_wraps_over_full_128_bits(self):
        """The whole IV is the counter: ff..ff is followed by 00..00."""
        key = os.urandom(16)
        counter = b"\xff" * 16
        with patch("fieldcrypt.fields.field_cipher.generate_iv", return_value=counter):
            encrypted = encrypt_field(key, bytes(32))

        ecb = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
        keystream = ecb.update(b"\xff" * 16 + bytes(16)) + ecb.finalize()
        assert encrypted.ciphertext == keystream


class TestEncryptField:
    """Tests for single field encryption."""

    def test_layout(self):
        key = os.urandom(16)
        encrypted = encrypt_field(key, "field value")
        assert len(encrypted.iv) == IV_SIZE
        assert len(encrypted.ciphertext) == len("field value")
        assert encrypted.to_bytes() == encrypted.iv + encrypted.ciphertext

    def test_roundtrip(self):
        key = os.urandom(16)
        encrypted = encrypt_field(key, "Hello, device!")
        assert device_decrypt(key, encrypted.to_bytes()) == b"Hello, device!"

    def test_empty_plaintext(self):
        """Empty value should produce just the IV."""
        key = os.urandom(16)
        encrypted = encrypt_field(key, "")
        assert encrypted.ciphertext == b""
        assert len(decode_base64(encrypted.to_base64())) == IV_SIZE
        assert device_decrypt(key, encrypted.to_bytes()) == b""

    def test_utf8_plaintext(self):
        """Non-ASCII text is encrypted as UTF-8."""
        key = os.urandom(16)
        text = "Grüße, 世界 🔐"
        encrypted = encrypt_field(key, text)
        assert len(encrypted.ciphertext) == len(text.encode('utf-8'))
        assert device_decrypt(key, encrypted.to_bytes()).decode('utf-8') == text

    def test_bytes_plaintext(self):
        key = os.urandom(16)
        data = os.urandom(100)
        assert device_decrypt(key, encrypt_field(key, data).to_bytes()) == data

    def test_symmetric_key_object(self):
        raw = os.urandom(16)
        encrypted = encrypt_field(SymmetricKey(raw), "value")
        assert device_decrypt(raw, encrypted.to_bytes()) == b"value"

    def test_different_ivs(self):
        """Each encryption should use a different IV."""
        key = os.urandom(16)
        first = encrypt_field(key, "message")
        second = encrypt_field(key, "message")
        assert first.iv != second.iv
        assert first.to_base64() != second.to_base64()

    def test_no_iv_parameter(self):
        """Callers cannot supply an IV."""
        params = inspect.signature(encrypt_field).parameters
        assert list(params) == ["key", "plaintext"]

    @pytest.mark.parametrize("size", [0, 15, 17, 24, 32])
    def test_wrong_key_size_rejected(self, size):
        """Only AES-128 keys are accepted."""
        with pytest.raises(CipherBackendFailure):
            encrypt_field(os.urandom(size), "value")

    def test_unencodable_text_rejected(self):
        """Lone surrogates (undecodable argv bytes) cannot be UTF-8 encoded."""
        with pytest.raises(CipherBackendFailure) as info:
            encrypt_field(os.urandom(16), "abc\udcff")
        assert info.value.user_message == FIELD_VALUE_INVALID_MESSAGE

    @pytest.mark.parametrize("value", [5, None, 3.5, ["a"]])
    def test_non_text_value_rejected(self, value):
        """Only str and bytes are field values; an int is not a length."""
        with pytest.raises(CipherBackendFailure):
            encrypt_field(os.urandom(16), value)

    def test_bytearray_plaintext(self):
        key = os.urandom(16)
        encrypted = encrypt_field(key, bytearray(b"abc"))
        assert device_decrypt(key, encrypted.to_bytes()) == b"abc"

    def test_generate_iv(self):
        assert len(generate_iv()) == IV_SIZE
        assert generate_iv() != generate_iv()


class TestEncryptedField:
    """Tests for the encrypted field container."""

    def test_parse_base64(self):
        key = os.urandom(16)
        encrypted = encrypt_field(key, "abc")
        parsed = EncryptedField.from_base64(encrypted.to_base64())
        assert parsed == encrypted

    def test_too_short_rejected(self):
        with pytest.raises(InvalidKeyFormat):
            EncryptedField.from_bytes(bytes(IV_SIZE - 1))

    def test_invalid_base64_rejected(self):
        with pytest.raises(InvalidKeyFormat):
            EncryptedField.from_base64("not base64!")


class TestFieldEncryptor:
    """Tests for the per-session encryptor."""

    def test_encrypt_and_count(self):
        key = os.urandom(16)
        encryptor = FieldEncryptor(key)
        encrypted = encryptor.encrypt("one")
        encryptor.encrypt("two")
        assert encryptor.fields_encrypted == 2
        assert device_decrypt(key, encrypted.to_bytes()) == b"one"

    def test_repeated_iv_redrawn(self):
        """A repeated IV under the same key is never handed out."""
        key = os.urandom(16)
        iv_a, iv_b = b"\xaa" * 16, b"\xbb" * 16
        encryptor = FieldEncryptor(key)
        with patch("fieldcrypt.fields.field_cipher.generate_iv",
                   side_effect=[iv_a, iv_a, iv_b]):
            first = encryptor.encrypt("x")
            second = encryptor.encrypt("x")
        assert first.iv == iv_a
        assert second.iv == iv_b
        assert encryptor.fields_encrypted == 2

    def test_keeps_own_copy_of_key(self):
        raw = os.urandom(16)
        key = SymmetricKey(raw)
        encryptor = FieldEncryptor(key)
        key.wipe()
        encrypted = encryptor.encrypt("still works")
        assert device_decrypt(raw, encrypted.to_bytes()) == b"still works"

    def test_closed_encryptor_rejects(self):
        encryptor = FieldEncryptor(os.urandom(16))
        encryptor.close()
        assert encryptor.closed
        with pytest.raises(CipherBackendFailure):
            encryptor.encrypt("x")

    def test_wrong_key_size_rejected(self):
        with pytest.raises(CipherBackendFailure):
            FieldEncryptor(os.urandom(32))

    def test_field_limit_per_key(self):
        """The issued-IV set is bounded; past the limit a new key is needed."""
        encryptor = FieldEncryptor(os.urandom(16))
        with patch("fieldcrypt.fields.field_cipher.MAX_FIELDS_PER_KEY", 2):
            encryptor.encrypt("one")
            encryptor.encrypt("two")
            with pytest.raises(CipherBackendFailure):
                encryptor.encrypt("three")
        assert encryptor.fields_encrypted == 2
