"""
ShardVault Cryptographic Utilities

Threshold encryption provider built from X25519 sealing, AES-256-GCM and
Shamir secret sharing of the data key.

Flow:
    1. The owner encrypts the plaintext with a fresh data key and splits the
       key into one share per node (``ThresholdCrypto.encrypt``).
    2. Each node re-seals its share for the consumer (``ThresholdCrypto.reencrypt``).
    3. The consumer combines any ``t`` re-sealed shares and opens the
       ciphertext (``ThresholdCrypto.decrypt``).
"""

import os
import base64
import secrets
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .errors import ShardVaultError
from .models import EncryptionResult


# Constants
NONCE_SIZE = 12  # 96 bits for AES-GCM
KEY_SIZE = 32    # 256 bits for AES-256
SALT_SIZE = 16   # 128 bits for HKDF salt
PUBLIC_KEY_SIZE = 32

# Shamir field: the Mersenne prime 2^521 - 1 is larger than any 256-bit key
SHAMIR_PRIME = 2**521 - 1
SHARE_SIZE = 66  # bytes needed for an element of the field

SHARE_INFO = b"shardvault-share"


class CryptoError(ShardVaultError):
    """Custom exception for cryptographic errors."""
    pass


@dataclass
class KeyPair:
    """
    X25519 key pair.

    Consumers use it to receive re-sealed shares, nodes use it to open
    the shares sealed to them at upload time.
    """
    private_key: X25519PrivateKey
    public_key: X25519PublicKey

    @property
    def public_key_bytes(self) -> bytes:
        """Get raw public key bytes."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )

    @property
    def public_key_b64(self) -> str:
        """Get base64-encoded public key."""
        return base64.b64encode(self.public_key_bytes).decode()

    @property
    def private_key_bytes(self) -> bytes:
        """Get raw private key bytes."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption()
        )

    @property
    def private_key_b64(self) -> str:
        """Get base64-encoded private key."""
        return base64.b64encode(self.private_key_bytes).decode()

    @classmethod
    def from_private_b64(cls, b64_key: str) -> "KeyPair":
        """Rebuild a key pair from a base64-encoded private key."""
        private_key = X25519PrivateKey.from_private_bytes(base64.b64decode(b64_key))
        return cls(private_key=private_key, public_key=private_key.public_key())

    def save(self, path: Path) -> None:
        """
        Save the private key to a file.

        Args:
            path: File path to save the key
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.private_key_bytes)
        # Owner read/write only
        os.chmod(path, 0o600)

    @classmethod
    def load(cls, path: Path) -> "KeyPair":
        """
        Load a key pair from a private key file.

        Args:
            path: Path to the private key file

        Returns:
            KeyPair instance
        """
        private_key = X25519PrivateKey.from_private_bytes(path.read_bytes())
        return cls(
            private_key=private_key,
            public_key=private_key.public_key()
        )

    @classmethod
    def load_or_generate(cls, path: Path) -> "KeyPair":
        """
        Load existing key pair or generate a new one.

        Args:
            path: Path to the private key file

        Returns:
            KeyPair instance
        """
        if path.exists():
            return cls.load(path)
        keypair = generate_keypair()
        keypair.save(path)
        return keypair


def generate_keypair() -> KeyPair:
    """
    Generate a new X25519 key pair.

    Returns:
        New KeyPair instance
    """
    private_key = X25519PrivateKey.generate()
    return KeyPair(
        private_key=private_key,
        public_key=private_key.public_key()
    )


def public_key_from_b64(b64_key: str) -> X25519PublicKey:
    """
    Create a public key from base64 encoding.

    Args:
        b64_key: Base64-encoded public key

    Returns:
        X25519PublicKey instance

    Raises:
        CryptoError: If the value is not a valid X25519 public key
    """
    try:
        key_bytes = base64.b64decode(b64_key, validate=True)
        return X25519PublicKey.from_public_bytes(key_bytes)
    except (ValueError, TypeError) as e:
        raise CryptoError(f"Invalid public key: {e}") from e


def derive_shared_key(
    private_key: X25519PrivateKey,
    peer_public_key: X25519PublicKey,
    salt: Optional[bytes] = None,
    info: bytes = SHARE_INFO
) -> tuple[bytes, bytes]:
    """
    Derive a shared symmetric key using X25519 + HKDF.

    Args:
        private_key: Our private key
        peer_public_key: The other party's public key
        salt: Optional salt for HKDF (random if not provided)
        info: Context info for HKDF

    Returns:
        Tuple of (derived_key, salt)
    """
    shared_secret = private_key.exchange(peer_public_key)

    if salt is None:
        salt = os.urandom(SALT_SIZE)

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        info=info,
    )
    derived_key = hkdf.derive(shared_secret)

    return derived_key, salt


def encrypt_data(key: bytes, plaintext: bytes) -> bytes:
    """
    Encrypt data using AES-256-GCM.

    Args:
        key: 32-byte AES key
        plaintext: Data to encrypt

    Returns:
        nonce || ciphertext || tag (concatenated)
    """
    nonce = os.urandom(NONCE_SIZE)
    aesgcm = AESGCM(key)
    ciphertext = aesgcm.encrypt(nonce, plaintext, None)
    return nonce + ciphertext


def decrypt_data(key: bytes, encrypted: bytes) -> bytes:
    """
    Decrypt data encrypted with AES-256-GCM.

    Args:
        key: 32-byte AES key
        encrypted: nonce || ciphertext || tag

    Returns:
        Decrypted plaintext

    Raises:
        cryptography.exceptions.InvalidTag: If decryption fails
    """
    nonce = encrypted[:NONCE_SIZE]
    ciphertext = encrypted[NONCE_SIZE:]
    aesgcm = AESGCM(key)
    return aesgcm.decrypt(nonce, ciphertext, None)


def seal(recipient_public_key: str | X25519PublicKey, data: bytes) -> bytes:
    """
    Seal data for a recipient using an ephemeral sender key.

    The sealed format is: ephemeral_pk || salt || nonce || ciphertext || tag

    Args:
        recipient_public_key: Recipient's public key (base64 string or key object)
        data: Bytes to seal

    Returns:
        Sealed bytes
    """
    if isinstance(recipient_public_key, str):
        recipient_public_key = public_key_from_b64(recipient_public_key)

    ephemeral = generate_keypair()
    key, salt = derive_shared_key(ephemeral.private_key, recipient_public_key)
    return ephemeral.public_key_bytes + salt + encrypt_data(key, data)


def unseal(our_keypair: KeyPair, sealed: bytes) -> bytes:
    """
    Open data sealed with :func:`seal`.

    Raises:
        CryptoError: If the data is truncated or was not sealed for this key
    """
    header = PUBLIC_KEY_SIZE + SALT_SIZE
    if len(sealed) < header + NONCE_SIZE:
        raise CryptoError("Sealed data is truncated")

    salt = sealed[PUBLIC_KEY_SIZE:header]
    try:
        ephemeral_public = X25519PublicKey.from_public_bytes(sealed[:PUBLIC_KEY_SIZE])
        # exchange() rejects low-order points with ValueError
        key, _ = derive_shared_key(our_keypair.private_key, ephemeral_public, salt=salt)
    except ValueError as e:
        raise CryptoError(f"Sealed data has an invalid ephemeral key: {e}") from e
    try:
        return decrypt_data(key, sealed[header:])
    except InvalidTag as e:
        raise CryptoError("Sealed data could not be opened with this key") from e


# =============================================================================
# Shamir Secret Sharing
# =============================================================================

def split_secret(secret: int, *, n: int, k: int) -> list[tuple[int, int]]:
    """Split ``secret`` into ``n`` points with reconstruction threshold ``k``."""
    if not (0 < k <= n):
        raise CryptoError(f"Invalid threshold {k}-of-{n}")
    if secret < 0 or secret >= SHAMIR_PRIME:
        raise CryptoError("Secret out of range")

    coeffs = [secret] + [secrets.randbelow(SHAMIR_PRIME) for _ in range(k - 1)]

    shares = []
    for x in range(1, n + 1):
        y = 0
        # Horner evaluation
        for c in reversed(coeffs):
            y = (y * x + c) % SHAMIR_PRIME
        shares.append((x, y))
    return shares


def recover_secret(points: Sequence[tuple[int, int]]) -> int:
    """Recover the secret by Lagrange interpolation at x=0."""
    xs = [x for x, _ in points]
    if len(set(xs)) != len(xs):
        raise CryptoError("Duplicate share indices")

    total = 0
    for i, (xi, yi) in enumerate(points):
        num = 1
        den = 1
        for j, (xj, _) in enumerate(points):
            if i == j:
                continue
            num = (num * -xj) % SHAMIR_PRIME
            den = (den * (xi - xj)) % SHAMIR_PRIME
        total = (total + yi * num * pow(den, -1, SHAMIR_PRIME)) % SHAMIR_PRIME
    return total


# =============================================================================
# Threshold Provider
# =============================================================================

class ThresholdCrypto:
    """
    (t, n) threshold encryption provider.

    ``n`` is implied by the number of node public keys passed to
    :meth:`encrypt`; ``t`` is fixed per provider instance.
    """

    def __init__(self, threshold: int = 2):
        if threshold < 1:
            raise CryptoError("Threshold must be at least 1")
        self.threshold = threshold

    def keygen(self) -> KeyPair:
        """Generate a consumer key pair."""
        return generate_keypair()

    def encrypt(self, node_public_keys: Sequence[str], plaintext: bytes) -> EncryptionResult:
        """
        Encrypt plaintext and produce one sealed key share per node.

        Args:
            node_public_keys: Ordered node public keys (base64)
            plaintext: Data to encrypt

        Returns:
            EncryptionResult whose shares are index-aligned with the keys
        """
        if len(node_public_keys) < self.threshold:
            raise CryptoError(
                f"Need at least {self.threshold} node keys, got {len(node_public_keys)}"
            )

        data_key = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = AESGCM(data_key).encrypt(nonce, plaintext, None)

        points = split_secret(
            int.from_bytes(data_key, "big"),
            n=len(node_public_keys),
            k=self.threshold
        )
        encrypted_shares = [
            seal(public_key, y.to_bytes(SHARE_SIZE, "big"))
            for public_key, (_, y) in zip(node_public_keys, points)
        ]

        return EncryptionResult(
            ciphertext=ciphertext,
            encrypted_shares=encrypted_shares,
            nonce=nonce
        )

    def reencrypt(
        self,
        node_keypair: KeyPair,
        encrypted_share: bytes,
        consumer_public_key: str
    ) -> bytes:
        """Re-seal a node's share for the consumer."""
        share = unseal(node_keypair, encrypted_share)
        return seal(consumer_public_key, share)

    def decrypt(
        self,
        reencrypted_shares: Sequence[bytes],
        consumer_keypair: KeyPair,
        nonce: bytes,
        ciphertext: bytes,
        chosen_indices: Sequence[int]
    ) -> bytes:
        """
        Combine re-sealed shares and decrypt the ciphertext.

        Args:
            reencrypted_shares: Shares re-sealed for the consumer
            consumer_keypair: The consumer's key pair
            nonce: Nonce published with the shares
            ciphertext: Encrypted payload
            chosen_indices: 1-based node positions of the shares

        Returns:
            Decrypted plaintext

        Raises:
            CryptoError: On too few shares, mismatched indices or a wrong key
        """
        if len(reencrypted_shares) != len(chosen_indices):
            raise CryptoError("Each share needs exactly one index")
        if len(reencrypted_shares) < self.threshold:
            raise CryptoError(
                f"Need {self.threshold} shares, got {len(reencrypted_shares)}"
            )

        points = [
            (index, int.from_bytes(unseal(consumer_keypair, share), "big"))
            for index, share in zip(chosen_indices, reencrypted_shares)
        ]
        secret = recover_secret(points)
        if secret.bit_length() > KEY_SIZE * 8:
            raise CryptoError("Shares do not reconstruct a valid data key")

        try:
            return AESGCM(secret.to_bytes(KEY_SIZE, "big")).decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise CryptoError("Ciphertext could not be decrypted with the recovered key") from e
