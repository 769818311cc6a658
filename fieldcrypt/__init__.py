"""
fieldcrypt - field value encryption for devices holding a P-256 key pair.

ECDH (P-256) with the device public key, HMAC-SHA256 key derivation over
the fixed label "config", and AES-128-CTR encryption of field values.
"""

__version__ = "1.0.0"
