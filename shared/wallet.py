"""
ShardVault Wallet Signer

Ed25519 signer used to authenticate writes to the metadata registry and
the task ledger.
"""

import os
import base64
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey


SIGNER_HEADER = "X-Signer"
SIGNATURE_HEADER = "X-Signature"


class WalletSigner:
    """Signs request bodies on behalf of a wallet."""

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key

    @classmethod
    def generate(cls) -> "WalletSigner":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def load_or_generate(cls, path: Path) -> "WalletSigner":
        """Load the wallet key from ``path``, creating it if missing."""
        if path.exists():
            return cls(Ed25519PrivateKey.from_private_bytes(path.read_bytes()))

        signer = cls.generate()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(signer._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption()
        ))
        os.chmod(path, 0o600)
        return signer

    @property
    def public_key_b64(self) -> str:
        raw = self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )
        return base64.b64encode(raw).decode()

    def sign(self, data: bytes) -> str:
        """Return the base64 signature of ``data``."""
        return base64.b64encode(self._private_key.sign(data)).decode()

    def headers(self, body: bytes) -> dict:
        """Signature headers for an HTTP request body."""
        return {
            SIGNER_HEADER: self.public_key_b64,
            SIGNATURE_HEADER: self.sign(body),
        }


def verify_signature(public_key_b64: str, signature_b64: str, data: bytes) -> bool:
    """Check a signature produced by :meth:`WalletSigner.sign`."""
    public_key = Ed25519PublicKey.from_public_bytes(base64.b64decode(public_key_b64))
    try:
        public_key.verify(base64.b64decode(signature_b64), data)
    except InvalidSignature:
        return False
    return True
