# Key Exchange Module
"""
Key agreement with the device:
- Ephemeral ECDH (P-256) key pair generation
- Device public key import and validation (raw 64-byte points)
- ECDH shared secret derivation
- HMAC-SHA256 key derivation over the fixed label "config"
- Import of a previously derived 16-byte key
"""

from .key_exchange import (
    CURVE,
    KeyPair,
    generate_ephemeral_key_pair,
    import_device_public_key,
    derive_shared_secret,
    export_public_key_raw,
)
from .key_derivation import (
    KDF_LABEL,
    SYMMETRIC_KEY_SIZE,
    SymmetricKey,
    derive_symmetric_key,
    import_symmetric_key,
)

__all__ = [
    'CURVE',
    'KeyPair',
    'generate_ephemeral_key_pair',
    'import_device_public_key',
    'derive_shared_secret',
    'export_public_key_raw',
    'KDF_LABEL',
    'SYMMETRIC_KEY_SIZE',
    'SymmetricKey',
    'derive_symmetric_key',
    'import_symmetric_key',
]
