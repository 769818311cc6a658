# Core Cryptography Module
"""
Shared building blocks:
- Base64 encode/decode with exact-length validation
- Raw P-256 point encode/decode (uncompressed-point prefix 0x04)
- Secret buffer wiping
- Structured error kinds
"""

from .errors import (
    ErrorKind,
    FieldCryptError,
    EnvironmentPrecondition,
    InvalidKeyFormat,
    InvalidKeyPoint,
    KeyAgreementError,
    CryptoBackendError,
    CipherBackendFailure,
    InvalidTransition,
)
from .codec import (
    decode_base64,
    decode_base64_exact,
    encode_base64,
    to_uncompressed_point,
    from_uncompressed_point,
    wipe,
    RAW_POINT_SIZE,
    UNCOMPRESSED_POINT_SIZE,
    UNCOMPRESSED_POINT_PREFIX,
)

__all__ = [
    'ErrorKind',
    'FieldCryptError',
    'EnvironmentPrecondition',
    'InvalidKeyFormat',
    'InvalidKeyPoint',
    'KeyAgreementError',
    'CryptoBackendError',
    'CipherBackendFailure',
    'InvalidTransition',
    'decode_base64',
    'decode_base64_exact',
    'encode_base64',
    'to_uncompressed_point',
    'from_uncompressed_point',
    'wipe',
    'RAW_POINT_SIZE',
    'UNCOMPRESSED_POINT_SIZE',
    'UNCOMPRESSED_POINT_PREFIX',
]
