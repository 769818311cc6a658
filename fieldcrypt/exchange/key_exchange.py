"""
Key Exchange Module

ECDH (P-256) between an ephemeral operator key pair and the device's
long-term public key.

Flow for a "new key" request:
    device_key = import_device_public_key(device_public_key_b64)
    key_pair   = generate_ephemeral_key_pair()
    secret     = derive_shared_secret(device_key, key_pair.private_key)
    server_raw = export_public_key_raw(key_pair.public_key)   # goes to the device

The device public key arrives as a raw point X || Y (64 bytes, base64),
and the operator public key is returned in the same format.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from ..core_crypto.codec import (
    decode_base64_exact,
    from_uncompressed_point,
    to_uncompressed_point,
    RAW_POINT_SIZE,
)
from ..core_crypto.errors import (
    CryptoBackendError,
    InvalidKeyPoint,
    KeyAgreementError,
)


logger = logging.getLogger(__name__)

# Constants
CURVE = ec.SECP256R1()      # NIST P-256, fixed by the device firmware
SHARED_SECRET_SIZE = 32     # ECDH output on P-256


@dataclass
class KeyPair:
    """ECDH key pair container."""
    private_key: Optional[ec.EllipticCurvePrivateKey]
    public_key: ec.EllipticCurvePublicKey

    @classmethod
    def generate(cls) -> 'KeyPair':
        """Generate a new P-256 key pair."""
        private_key = ec.generate_private_key(CURVE)
        return cls(private_key, private_key.public_key())

    @classmethod
    def from_private_value(cls, private_value: int) -> 'KeyPair':
        """
        Build a key pair from a known private scalar.

        Used to reproduce a previous "new key" run against the same device,
        and to inject fixed key pairs in tests.
        """
        private_key = ec.derive_private_key(private_value, CURVE)
        return cls(private_key, private_key.public_key())

    def public_raw(self) -> bytes:
        """Get public key as raw X || Y bytes (64 bytes)."""
        return export_public_key_raw(self.public_key)

    def discard_private(self) -> None:
        """Drop the private key handle once it is no longer needed."""
        self.private_key = None

    def __repr__(self) -> str:
        state = "present" if self.private_key is not None else "discarded"
        return f"KeyPair(curve={CURVE.name}, private_key=<{state}>)"


def generate_ephemeral_key_pair() -> KeyPair:
    """
    Generate the operator's ephemeral P-256 key pair.

    Returns:
        Fresh KeyPair

    Raises:
        CryptoBackendError: If the backend cannot generate P-256 keys
    """
    try:
        key_pair = KeyPair.generate()
    except (UnsupportedAlgorithm, ValueError, OSError) as exc:
        raise CryptoBackendError(f"P-256 key generation failed: {exc}") from exc
    logger.debug("Generated ephemeral %s key pair", CURVE.name)
    return key_pair


def import_device_public_key(device_public_key_b64: str) -> ec.EllipticCurvePublicKey:
    """
    Import and validate the device public key.

    Args:
        device_public_key_b64: Base64 of the raw 64-byte point X || Y

    Returns:
        Public key usable for ECDH

    Raises:
        InvalidKeyFormat: If the value is not base64 or not 64 bytes
        InvalidKeyPoint: If the point is not a valid P-256 point
    """
    raw_xy = decode_base64_exact(device_public_key_b64, RAW_POINT_SIZE)
    encoded = to_uncompressed_point(raw_xy)

    try:
        public_key = ec.EllipticCurvePublicKey.from_encoded_point(CURVE, encoded)
    except ValueError as exc:
        raise InvalidKeyPoint(f"Device public key is not a valid P-256 point: {exc}") from exc
    except UnsupportedAlgorithm as exc:
        raise CryptoBackendError(f"P-256 is not supported by the backend: {exc}") from exc

    return public_key


def derive_shared_secret(device_public_key: ec.EllipticCurvePublicKey,
                         private_key: Optional[ec.EllipticCurvePrivateKey]) -> bytes:
    """
    Compute the ECDH shared secret.

    Args:
        device_public_key: Imported device public key
        private_key: Operator's ephemeral private key

    Returns:
        Shared secret bytes (32 bytes)

    Raises:
        KeyAgreementError: If the private key is missing, the curves differ
            or the backend rejects the exchange
    """
    if private_key is None:
        raise KeyAgreementError("Private key has already been discarded")
    if not isinstance(device_public_key, ec.EllipticCurvePublicKey):
        raise KeyAgreementError(
            f"Expected an EC public key, got {type(device_public_key).__name__}"
        )
    if device_public_key.curve.name != private_key.curve.name:
        raise KeyAgreementError(
            f"Keys are on different curves ({device_public_key.curve.name} "
            f"vs {private_key.curve.name})"
        )

    try:
        shared_secret = private_key.exchange(ec.ECDH(), device_public_key)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyAgreementError(f"ECDH failed: {exc}") from exc

    if len(shared_secret) != SHARED_SECRET_SIZE:
        raise KeyAgreementError(
            f"ECDH produced {len(shared_secret)} bytes - expected {SHARED_SECRET_SIZE}"
        )
    return shared_secret


def export_public_key_raw(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """Export a public key as raw X || Y (prefix stripped), 64 bytes."""
    encoded = public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint
    )
    return from_uncompressed_point(encoded)
