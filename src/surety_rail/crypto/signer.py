"""
Receipt Signing Keys

Governance receipts are signed with Ed25519. A rail either generates a fresh
key or loads one from configuration (hex-encoded private key), so a rail
restored from storage keeps signing under the same key id and can still
verify the receipts it minted before.
"""

import base64
import binascii
import hashlib
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional
import structlog

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

logger = structlog.get_logger()


class SignatureAlgorithm(Enum):
    """Signature schemes a receipt can carry."""
    ED25519 = "Ed25519"


class CryptoSigner(ABC):
    """Signs and verifies receipt payloads under one key."""

    @property
    @abstractmethod
    def algorithm(self) -> SignatureAlgorithm:
        """Scheme recorded on every receipt."""

    @property
    @abstractmethod
    def key_id(self) -> str:
        """Short fingerprint of the public key."""

    @abstractmethod
    def sign(self, data: bytes) -> bytes:
        """Raw signature over data."""

    @abstractmethod
    def verify(self, data: bytes, signature: bytes) -> bool:
        """True when signature is valid for data under this key."""

    def sign_b64(self, data: bytes) -> str:
        return base64.b64encode(self.sign(data)).decode('ascii')

    def verify_b64(self, data: bytes, signature_b64: str) -> bool:
        try:
            signature = base64.b64decode(signature_b64, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("signature_decode_failed", key_id=self.key_id)
            return False
        return self.verify(data, signature)


class Ed25519Signer(CryptoSigner):
    """Ed25519 receipt key."""

    def __init__(self, private_key_bytes: Optional[bytes] = None):
        if private_key_bytes:
            self._private_key = ed25519.Ed25519PrivateKey.from_private_bytes(private_key_bytes)
        else:
            self._private_key = ed25519.Ed25519PrivateKey.generate()

        self._public_key = self._private_key.public_key()
        public_bytes = self._public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self._key_id = hashlib.sha256(public_bytes).hexdigest()[:16]

    @classmethod
    def from_hex(cls, key_hex: str) -> "Ed25519Signer":
        """Load a key exported with export_hex(). Raises ValueError if malformed."""
        key_bytes = bytes.fromhex(key_hex)
        if len(key_bytes) != 32:
            raise ValueError("Ed25519 private key must be 32 bytes")
        return cls(key_bytes)

    def export_hex(self) -> str:
        """Hex-encoded private key, the format read by from_hex()."""
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        ).hex()

    @property
    def algorithm(self) -> SignatureAlgorithm:
        return SignatureAlgorithm.ED25519

    @property
    def key_id(self) -> str:
        return self._key_id

    def sign(self, data: bytes) -> bytes:
        return self._private_key.sign(data)

    def verify(self, data: bytes, signature: bytes) -> bool:
        try:
            self._public_key.verify(signature, data)
        except InvalidSignature:
            return False
        return True
