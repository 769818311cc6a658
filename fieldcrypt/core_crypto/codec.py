"""
Codec Module

Base64 and raw elliptic-curve point encoding shared by every other
component.

Wire formats:
- Keys and ciphertexts travel as standard base64 with padding.
- The device public key travels as a raw P-256 point X || Y (64 bytes),
  without the X9.62 uncompressed-point prefix byte (0x04).
"""

import base64
import binascii
from typing import Union

from .errors import InvalidKeyFormat


# Constants
UNCOMPRESSED_POINT_PREFIX = 0x04
COORDINATE_SIZE = 32                              # P-256 field element
RAW_POINT_SIZE = 2 * COORDINATE_SIZE              # X || Y
UNCOMPRESSED_POINT_SIZE = RAW_POINT_SIZE + 1      # 0x04 || X || Y


def decode_base64(text: Union[str, bytes]) -> bytes:
    """
    Decode standard base64 (with padding).

    Surrounding whitespace (a trailing newline from a pasted value) is
    ignored; anything else outside the base64 alphabet is rejected.

    Raises:
        InvalidKeyFormat: If the input is not valid base64
    """
    if isinstance(text, str):
        try:
            text = text.encode('ascii')
        except UnicodeEncodeError:
            raise InvalidKeyFormat("Value is not valid base64 (non-ASCII characters)") from None
    if not isinstance(text, (bytes, bytearray)):
        raise InvalidKeyFormat(f"Expected a base64 string, got {type(text).__name__}")

    try:
        decoded = base64.b64decode(bytes(text).strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidKeyFormat(f"Value is not valid base64: {exc}") from exc
    return decoded


def decode_base64_exact(text: Union[str, bytes], expected_len: int) -> bytes:
    """
    Decode standard base64 and require an exact decoded length.

    Args:
        text: Base64 string or ASCII bytes
        expected_len: Required length of the decoded value

    Returns:
        Decoded bytes of length ``expected_len``

    Raises:
        InvalidKeyFormat: If the input is not valid base64 or decodes to
            the wrong number of bytes
    """
    decoded = decode_base64(text)
    if len(decoded) != expected_len:
        raise InvalidKeyFormat(
            f"Decoded value is {len(decoded)} bytes - should be {expected_len}"
        )
    return decoded


def encode_base64(data: bytes) -> str:
    """Encode bytes as standard base64 with padding."""
    return base64.b64encode(bytes(data)).decode('ascii')


def to_uncompressed_point(raw_xy: bytes) -> bytes:
    """
    Prepend the X9.62 uncompressed-point prefix to a raw X || Y point.

    Raises:
        InvalidKeyFormat: If the raw point is not 64 bytes
    """
    if len(raw_xy) != RAW_POINT_SIZE:
        raise InvalidKeyFormat(
            f"Raw point is {len(raw_xy)} bytes - should be {RAW_POINT_SIZE}"
        )
    return bytes([UNCOMPRESSED_POINT_PREFIX]) + bytes(raw_xy)


def from_uncompressed_point(point: bytes) -> bytes:
    """
    Strip the X9.62 uncompressed-point prefix, returning X || Y.

    Raises:
        InvalidKeyFormat: If the input is not 65 bytes or does not start
            with 0x04
    """
    if len(point) != UNCOMPRESSED_POINT_SIZE:
        raise InvalidKeyFormat(
            f"Encoded point is {len(point)} bytes - should be {UNCOMPRESSED_POINT_SIZE}"
        )
    if point[0] != UNCOMPRESSED_POINT_PREFIX:
        raise InvalidKeyFormat(f"Unexpected point prefix 0x{point[0]:02x} - should be 0x04")
    return bytes(point[1:])


def wipe(buffer: bytearray) -> None:
    """Zero a mutable secret buffer in place."""
    for i in range(len(buffer)):
        buffer[i] = 0
