"""
Field Encryption Module

Encrypts plain text field values for the device with AES-128-CTR.

Encrypted field format (base64 on the wire):
    [iv (16 bytes) | ciphertext (len(plaintext) bytes)]

The 16-byte IV is drawn fresh for every call and is used directly as the
full 128-bit initial counter block. There is no nonce/counter split and
no authentication tag: the layout is fixed by the device firmware.

Device-side decryption contract (not performed here):
    iv, ciphertext = data[:16], data[16:]
    plaintext = AES-128-CTR(key, initial_counter=iv).decrypt(ciphertext)

Security notes:
- Callers can never supply an IV; every encryption draws its own.
- Reusing an IV with the same key would leak the XOR of two plaintexts.
"""

import logging
import secrets
import threading
from dataclasses import dataclass
from typing import Set, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..core_crypto.codec import decode_base64, encode_base64, wipe
from ..core_crypto.errors import CipherBackendFailure, InvalidKeyFormat
from ..exchange.key_derivation import SymmetricKey


logger = logging.getLogger(__name__)

# Constants
AES_KEY_SIZE = 16   # AES-128
IV_SIZE = 16        # one AES block, used as the initial counter
MAX_FIELDS_PER_KEY = 2 ** 20   # bounds the issued-IV set of a FieldEncryptor

FIELD_VALUE_INVALID_MESSAGE = "The field value cannot be encrypted. Please review it and try again."


def generate_iv() -> bytes:
    """
    Generate a random IV / initial counter block.

    CRITICAL: Never reuse an IV with the same key!

    Returns:
        16 random bytes
    """
    return secrets.token_bytes(IV_SIZE)


@dataclass(frozen=True)
class EncryptedField:
    """
    Container for one encrypted field value.

    Format: [iv | ciphertext]
    """
    iv: bytes           # 16 bytes
    ciphertext: bytes   # same length as the plaintext

    def to_bytes(self) -> bytes:
        return self.iv + self.ciphertext

    def to_base64(self) -> str:
        """The ``fieldValueEncryptedBase64`` output."""
        return encode_base64(self.to_bytes())

    @classmethod
    def from_bytes(cls, data: bytes) -> 'EncryptedField':
        """Split IV and ciphertext the way the device does."""
        if len(data) < IV_SIZE:
            raise InvalidKeyFormat(
                f"Encrypted field is {len(data)} bytes - needs at least {IV_SIZE}"
            )
        return cls(bytes(data[:IV_SIZE]), bytes(data[IV_SIZE:]))

    @classmethod
    def from_base64(cls, text: str) -> 'EncryptedField':
        return cls.from_bytes(decode_base64(text))


def _as_bytes(plaintext: Union[str, bytes]) -> bytes:
    if isinstance(plaintext, str):
        try:
            return plaintext.encode('utf-8')
        except UnicodeEncodeError as exc:
            raise CipherBackendFailure(
                f"Field value is not encodable as UTF-8: {exc.reason}",
                FIELD_VALUE_INVALID_MESSAGE,
            ) from None
    if isinstance(plaintext, (bytes, bytearray)):
        return bytes(plaintext)
    raise CipherBackendFailure(
        f"Field value must be str or bytes, got {type(plaintext).__name__}",
        FIELD_VALUE_INVALID_MESSAGE,
    )


def _key_buffer(key: Union[SymmetricKey, bytes, bytearray]) -> Union[bytes, bytearray]:
    if isinstance(key, SymmetricKey):
        return key.material
    return key


def encrypt_field(key: Union[SymmetricKey, bytes, bytearray],
                  plaintext: Union[str, bytes]) -> EncryptedField:
    """
    Encrypt one field value with AES-128-CTR under a fresh random IV.

    Args:
        key: 16-byte symmetric key
        plaintext: Field value; text is encoded as UTF-8. May be empty.

    Returns:
        EncryptedField with ciphertext of the same length as the plaintext

    Raises:
        CipherBackendFailure: If the key is not 16 bytes, the value is not
            str or bytes (or not encodable as UTF-8), or the backend rejects
            the operation
    """
    key_bytes = _key_buffer(key)
    if len(key_bytes) != AES_KEY_SIZE:
        raise CipherBackendFailure(
            f"Key is {len(key_bytes)} bytes - AES-128 requires {AES_KEY_SIZE}"
        )

    data = _as_bytes(plaintext)
    iv = generate_iv()

    try:
        encryptor = Cipher(algorithms.AES(key_bytes), modes.CTR(iv)).encryptor()
        ciphertext = encryptor.update(data) + encryptor.finalize()
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CipherBackendFailure(f"AES-CTR encryption failed: {exc}") from exc

    return EncryptedField(iv, ciphertext)


class FieldEncryptor:
    """
    Encrypts field values under one key for the lifetime of a session.

    Holds its own copy of the key; ``close()`` wipes it. Safe to call from
    several threads at once.

    Every issued IV is remembered so none is handed out twice under the
    key. The set is bounded: after ``MAX_FIELDS_PER_KEY`` fields the
    encryptor refuses further work and a new key has to be derived.
    """

    def __init__(self, key: Union[SymmetricKey, bytes, bytearray]):
        """
        Initialize with the field encryption key.

        Args:
            key: 16-byte symmetric key
        """
        key_bytes = _key_buffer(key)
        if len(key_bytes) != AES_KEY_SIZE:
            raise CipherBackendFailure(f"Key must be {AES_KEY_SIZE} bytes")
        self._key = bytearray(key_bytes)
        self._issued_ivs: Set[bytes] = set()  # Track IVs to prevent reuse
        self._count = 0
        self._closed = False
        self._lock = threading.Lock()

    @property
    def fields_encrypted(self) -> int:
        return self._count

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_limit(self) -> None:
        if self._count >= MAX_FIELDS_PER_KEY:
            raise CipherBackendFailure(
                f"Field limit of {MAX_FIELDS_PER_KEY} per key reached - derive a new key"
            )

    def encrypt(self, plaintext: Union[str, bytes]) -> EncryptedField:
        """Encrypt a field value; raises CipherBackendFailure once closed."""
        if self.closed:
            raise CipherBackendFailure("Encryptor has been closed")
        self._check_limit()

        while True:
            encrypted = encrypt_field(self._key, plaintext)

            # Never hand out an IV twice under this key
            with self._lock:
                if self._closed:
                    raise CipherBackendFailure("Encryptor was closed during encryption")
                self._check_limit()
                if encrypted.iv not in self._issued_ivs:
                    self._issued_ivs.add(encrypted.iv)
                    self._count += 1
                    return encrypted
            logger.warning("Random IV repeated under the same key; drawing a new one")

    def close(self) -> None:
        """Wipe the key copy and forget issued IVs."""
        with self._lock:
            wipe(self._key)
            self._issued_ivs.clear()
            self._closed = True
