# tunnel_plane/core/keys.py
"""
WireGuard key material

Keys are X25519. The standard DER containers (SubjectPublicKeyInfo and
PKCS8) always end with the 32 raw key bytes, which is what WireGuard
expects in Base64 form.
"""

import base64
from typing import NamedTuple

from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from .exceptions import InvalidKeyFormatError

RAW_KEY_LENGTH = 32
ENCODED_KEY_LENGTH = 44


class KeyPair(NamedTuple):
    public_key: str
    private_key: str


def _raw_tail(encoded: bytes) -> bytes:
    return encoded[-RAW_KEY_LENGTH:]


def generate_key_pair() -> KeyPair:
    """Generate a WireGuard key pair, both halves as 44-char Base64"""
    private_obj = x25519.X25519PrivateKey.generate()

    private_der = private_obj.private_bytes(Encoding.DER, PrivateFormat.PKCS8, NoEncryption())
    public_der = private_obj.public_key().public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)

    return KeyPair(
        public_key=base64.b64encode(_raw_tail(public_der)).decode("ascii"),
        private_key=base64.b64encode(_raw_tail(private_der)).decode("ascii"),
    )


def public_key_from_private(private_key: str) -> str:
    """Derive the Base64 public key for a Base64 private key"""
    raw = base64.b64decode(private_key)
    private_obj = x25519.X25519PrivateKey.from_private_bytes(raw)
    return base64.b64encode(
        private_obj.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    ).decode("ascii")


def validate_public_key(public_key: str) -> str:
    """
    Accept a public key only in canonical WireGuard form

    Raises:
        InvalidKeyFormatError: Unless the key is 44 chars ending with '='
    """
    if not public_key or len(public_key) != ENCODED_KEY_LENGTH or not public_key.endswith("="):
        raise InvalidKeyFormatError(
            "Invalid WireGuard public key format. Must be 44 chars Base64 ending with =",
            details={"length": len(public_key or "")},
        )
    return public_key
