"""
ShardVault Node Agent Cryptography

Manages the node's key pair. The public key is what the node directory
publishes; the private key opens the shares sealed to this node.
"""

from pathlib import Path
from typing import Optional
import structlog

from shared.crypto_utils import KeyPair, ThresholdCrypto

logger = structlog.get_logger()


class NodeCrypto:
    """
    Manages cryptographic operations for a node agent.

    Each node holds one share of every published data key, sealed to
    its own key pair.
    """

    def __init__(self, key_path: str = "data/node.key", threshold: int = 2):
        self._key_path: Path = Path(key_path)
        self._keypair: Optional[KeyPair] = None
        self._crypto = ThresholdCrypto(threshold=threshold)

    def initialize(self) -> None:
        """Load or generate the node's key pair."""
        self._keypair = KeyPair.load_or_generate(self._key_path)
        logger.info(
            "node_crypto_initialized",
            public_key=self._keypair.public_key_b64[:16] + "..."
        )

    def use_keypair(self, keypair: KeyPair) -> None:
        """Use an in-memory key pair instead of a key file."""
        self._keypair = keypair

    @property
    def keypair(self) -> KeyPair:
        """Get the node's key pair."""
        if not self._keypair:
            raise RuntimeError("Crypto not initialized. Call initialize() first.")
        return self._keypair

    @property
    def public_key(self) -> str:
        """Get the node's public key (base64)."""
        return self.keypair.public_key_b64

    def reencrypt_share(self, encrypted_share: bytes, consumer_public_key: str) -> bytes:
        """
        Re-seal this node's share for a consumer.

        Args:
            encrypted_share: Share sealed to this node at upload time
            consumer_public_key: Consumer's public key (base64)

        Returns:
            The share sealed to the consumer
        """
        return self._crypto.reencrypt(self.keypair, encrypted_share, consumer_public_key)
