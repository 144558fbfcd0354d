"""
Cryptographic Primitives for Surety Rail
"""

from .signer import (
    SignatureAlgorithm,
    CryptoSigner,
    Ed25519Signer,
)

__all__ = [
    "SignatureAlgorithm",
    "CryptoSigner",
    "Ed25519Signer",
]
