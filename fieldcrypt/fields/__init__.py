# Field Encryption Module
"""
Field value encryption for the device:
- AES-128-CTR with a fresh random 16-byte IV per field
- IV used directly as the initial 128-bit counter block
- Output layout [iv | ciphertext], base64 on the wire

Security features:
- Callers cannot supply an IV
- Per-key tracking of issued IVs
"""

from .field_cipher import (
    AES_KEY_SIZE,
    IV_SIZE,
    EncryptedField,
    FieldEncryptor,
    encrypt_field,
    generate_iv,
)

__all__ = [
    'AES_KEY_SIZE',
    'IV_SIZE',
    'EncryptedField',
    'FieldEncryptor',
    'encrypt_field',
    'generate_iv',
]
