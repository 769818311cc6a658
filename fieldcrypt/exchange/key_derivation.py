"""
Key Derivation Module

Turns the 32-byte ECDH shared secret into the 16-byte field encryption key:

    symmetric_key = HMAC-SHA256(key=shared_secret, msg=b"config")[:16]

The label b"config" is shared with the device firmware; it is a protocol
constant, not a parameter. The derivation is deterministic, so re-running
the "new key" flow with the same key pairs reproduces the same key.

A key derived in an earlier session can also be imported directly from
its base64 form (the "use existing key" path).
"""

import hashlib
import hmac

from ..core_crypto.codec import decode_base64_exact, encode_base64, wipe
from ..core_crypto.errors import KeyAgreementError


# Protocol constants
KDF_LABEL = b"config"
SHARED_SECRET_SIZE = 32
SYMMETRIC_KEY_SIZE = 16     # AES-128


class SymmetricKey:
    """
    Owned 16-byte field encryption key.

    The key bytes live in a bytearray so they can be zeroed on reset.
    """

    __slots__ = ('_key',)

    def __init__(self, key: bytes):
        if len(key) != SYMMETRIC_KEY_SIZE:
            raise ValueError(f"Key must be {SYMMETRIC_KEY_SIZE} bytes")
        self._key = bytearray(key)

    @property
    def material(self) -> bytearray:
        """The live key buffer (zeroed by ``wipe``)."""
        return self._key

    @property
    def is_wiped(self) -> bool:
        return not any(self._key)

    def copy(self) -> bytearray:
        """Private copy of the key bytes; the caller wipes it after use."""
        return bytearray(self._key)

    def to_base64(self) -> str:
        """Export as base64 for operator storage and later reuse."""
        return encode_base64(self._key)

    def wipe(self) -> None:
        wipe(self._key)

    def __bytes__(self) -> bytes:
        return bytes(self._key)

    def __len__(self) -> int:
        return len(self._key)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SymmetricKey):
            return NotImplemented
        return hmac.compare_digest(bytes(self._key), bytes(other._key))

    __hash__ = None

    def __repr__(self) -> str:
        return f"SymmetricKey(<{len(self._key)} bytes redacted>)"


def derive_symmetric_key(shared_secret: bytes) -> SymmetricKey:
    """
    Derive the field encryption key from the ECDH shared secret.

    Args:
        shared_secret: 32-byte ECDH output

    Returns:
        16-byte SymmetricKey

    Raises:
        KeyAgreementError: If the shared secret is not 32 bytes
    """
    if len(shared_secret) != SHARED_SECRET_SIZE:
        raise KeyAgreementError(
            f"Shared secret is {len(shared_secret)} bytes - should be {SHARED_SECRET_SIZE}"
        )

    digest = bytearray(hmac.new(shared_secret, KDF_LABEL, hashlib.sha256).digest())
    truncated = digest[:SYMMETRIC_KEY_SIZE]
    try:
        return SymmetricKey(truncated)
    finally:
        wipe(truncated)
        wipe(digest)


def import_symmetric_key(symmetric_key_b64: str) -> SymmetricKey:
    """
    Import a previously derived key from base64.

    Raises:
        InvalidKeyFormat: If the value is not base64 or not 16 bytes
    """
    return SymmetricKey(decode_base64_exact(symmetric_key_b64, SYMMETRIC_KEY_SIZE))
