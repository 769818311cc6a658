# Session Module
"""
Operator session state machine:
- Mode selection (generate a new key / use an existing key)
- Device public key submission -> ECDH -> key derivation
- Symmetric key import
- Field encryption once keys are ready
- Epoch-based discarding of superseded results
"""

from .encryption_session import (
    Mode,
    Idle,
    AwaitingDeviceKey,
    AwaitingSymmetricKey,
    KeysReady,
    SessionState,
    EncryptionSession,
)

__all__ = [
    'Mode',
    'Idle',
    'AwaitingDeviceKey',
    'AwaitingSymmetricKey',
    'KeysReady',
    'SessionState',
    'EncryptionSession',
]
