"""
Error Kinds

Every failure of the key agreement and field encryption pipeline is
reported as one of the exceptions below. Each carries an ``ErrorKind``
and a short ``user_message`` that can be shown to the operator as-is;
the exception text itself may contain more technical detail.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Structured error kinds surfaced to the notification sink."""
    ENVIRONMENT_PRECONDITION = "environment_precondition"
    INVALID_KEY_FORMAT = "invalid_key_format"
    INVALID_KEY_POINT = "invalid_key_point"
    KEY_AGREEMENT = "key_agreement"
    CRYPTO_BACKEND = "crypto_backend"
    CIPHER_BACKEND = "cipher_backend"
    INVALID_TRANSITION = "invalid_transition"


class FieldCryptError(Exception):
    """Base class for all fieldcrypt errors."""

    kind: ErrorKind = ErrorKind.CRYPTO_BACKEND
    default_user_message = "The cryptographic operation failed."

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or self.default_user_message


class EnvironmentPrecondition(FieldCryptError):
    """Insecure transport or unsupported backend (only raised when fail-closed)."""
    kind = ErrorKind.ENVIRONMENT_PRECONDITION
    default_user_message = "The encryption tool is not supported in this environment."


class InvalidKeyFormat(FieldCryptError, ValueError):
    """Malformed base64 or wrong decoded length."""
    kind = ErrorKind.INVALID_KEY_FORMAT
    default_user_message = "The key is invalid. Please review it and try again."


class InvalidKeyPoint(FieldCryptError, ValueError):
    """The backend rejected an imported public point."""
    kind = ErrorKind.INVALID_KEY_POINT
    default_user_message = "The device public key is invalid. Please review it and try again."


class KeyAgreementError(FieldCryptError):
    """ECDH could not be performed."""
    kind = ErrorKind.KEY_AGREEMENT
    default_user_message = "The key agreement with the device public key failed."


class CryptoBackendError(FieldCryptError):
    """Key generation, RNG or backend availability failure."""
    kind = ErrorKind.CRYPTO_BACKEND
    default_user_message = "The cryptographic backend is unavailable. Please try again."


class CipherBackendFailure(FieldCryptError):
    """The backend rejected the key or the encryption operation."""
    kind = ErrorKind.CIPHER_BACKEND
    default_user_message = "The field value could not be encrypted."


class InvalidTransition(FieldCryptError, RuntimeError):
    """Operation issued in a session state that does not accept it."""
    kind = ErrorKind.INVALID_TRANSITION
    default_user_message = "This action is not available right now."
