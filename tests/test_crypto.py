"""
Tests for cryptographic utilities and the threshold provider.
"""

import pytest
import tempfile
from itertools import combinations
from pathlib import Path

from shared.crypto_utils import (
    KeyPair,
    ThresholdCrypto,
    CryptoError,
    SHARE_SIZE,
    generate_keypair,
    public_key_from_b64,
    derive_shared_key,
    encrypt_data,
    decrypt_data,
    seal,
    unseal,
    split_secret,
    recover_secret,
)
from shared.wallet import WalletSigner, verify_signature


class TestKeyPair:
    """Tests for KeyPair class."""

    def test_generate_keypair(self):
        """Test key pair generation."""
        keypair = generate_keypair()
        assert keypair.private_key is not None
        assert keypair.public_key is not None
        assert len(keypair.public_key_b64) > 0

    def test_keypair_save_load(self):
        """Test saving and loading key pair."""
        with tempfile.TemporaryDirectory() as tmpdir:
            key_path = Path(tmpdir) / "test.key"

            original = generate_keypair()
            original.save(key_path)

            loaded = KeyPair.load(key_path)
            assert loaded.public_key_b64 == original.public_key_b64
            assert key_path.stat().st_mode & 0o777 == 0o600

    def test_keypair_load_or_generate_new(self):
        """Test load_or_generate creates new key if not exists."""
        with tempfile.TemporaryDirectory() as tmpdir:
            key_path = Path(tmpdir) / "nested" / "new.key"

            assert not key_path.exists()
            keypair = KeyPair.load_or_generate(key_path)
            assert key_path.exists()
            assert keypair.public_key_b64 is not None

    def test_private_key_b64_roundtrip(self):
        """Test rebuilding a key pair from its base64 private key."""
        keypair = generate_keypair()
        restored = KeyPair.from_private_b64(keypair.private_key_b64)
        assert restored.public_key_b64 == keypair.public_key_b64

    def test_public_key_from_invalid_b64(self):
        """Test that garbage public keys are rejected."""
        with pytest.raises(CryptoError):
            public_key_from_b64("not-a-key")


class TestKeyDerivation:
    """Tests for key derivation."""

    def test_derive_shared_key(self):
        """Test that two parties derive the same shared key."""
        alice = generate_keypair()
        bob = generate_keypair()

        alice_key, salt = derive_shared_key(alice.private_key, bob.public_key)
        bob_key, _ = derive_shared_key(bob.private_key, alice.public_key, salt=salt)

        assert alice_key == bob_key

    def test_encrypt_decrypt_data(self):
        """Test raw data encryption/decryption."""
        key = b"0123456789abcdef0123456789abcdef"
        plaintext = b"Hello, World!"

        encrypted = encrypt_data(key, plaintext)
        assert encrypted != plaintext
        assert decrypt_data(key, encrypted) == plaintext


class TestSealing:
    """Tests for sealing data to a recipient key."""

    def test_seal_unseal(self):
        """Test that the recipient can open sealed data."""
        recipient = generate_keypair()
        sealed = seal(recipient.public_key_b64, b"share bytes")
        assert unseal(recipient, sealed) == b"share bytes"

    def test_seal_is_randomized(self):
        """Test that sealing twice gives different bytes."""
        recipient = generate_keypair()
        assert seal(recipient.public_key, b"x") != seal(recipient.public_key, b"x")

    def test_unseal_wrong_key_fails(self):
        """Test that another key cannot open sealed data."""
        recipient = generate_keypair()
        sealed = seal(recipient.public_key_b64, b"secret")

        with pytest.raises(CryptoError):
            unseal(generate_keypair(), sealed)

    def test_unseal_truncated_fails(self):
        """Test that truncated input is rejected."""
        with pytest.raises(CryptoError):
            unseal(generate_keypair(), b"short")

    def test_unseal_low_order_key_fails(self):
        """Test that a corrupted all-zero ephemeral key is rejected."""
        corrupted = bytes(32) + bytes(16) + bytes(40)
        with pytest.raises(CryptoError):
            unseal(generate_keypair(), corrupted)


class TestShamir:
    """Tests for Shamir secret sharing."""

    def test_any_threshold_subset_recovers(self):
        """Test that every subset of size k recovers the secret."""
        secret = 123456789
        points = split_secret(secret, n=5, k=3)

        for subset in combinations(points, 3):
            assert recover_secret(list(subset)) == secret

    def test_below_threshold_does_not_recover(self):
        """Test that k-1 points do not give the secret."""
        secret = 2**200 + 17
        points = split_secret(secret, n=3, k=2)
        assert recover_secret(points[:1]) != secret

    def test_invalid_threshold(self):
        """Test that k > n is rejected."""
        with pytest.raises(CryptoError):
            split_secret(1, n=2, k=3)

    def test_duplicate_indices_rejected(self):
        """Test that repeated x-coordinates are rejected."""
        points = split_secret(5, n=3, k=2)
        with pytest.raises(CryptoError):
            recover_secret([points[0], points[0]])


class TestThresholdCrypto:
    """Tests for the (t, n) threshold provider."""

    def setup_method(self):
        """Set up a 2-of-3 deployment."""
        self.crypto = ThresholdCrypto(threshold=2)
        self.nodes = [generate_keypair() for _ in range(3)]
        self.consumer = self.crypto.keygen()

    def _reencrypt(self, result, positions):
        return [
            self.crypto.reencrypt(
                self.nodes[p - 1],
                result.encrypted_shares[p - 1],
                self.consumer.public_key_b64
            )
            for p in positions
        ]

    def test_encrypt_produces_share_per_node(self):
        """Test that shares are index-aligned with node keys."""
        result = self.crypto.encrypt([n.public_key_b64 for n in self.nodes], b"data")

        assert len(result.encrypted_shares) == 3
        assert len(result.nonce) == 12
        for node, share in zip(self.nodes, result.encrypted_shares):
            assert len(unseal(node, share)) == SHARE_SIZE

    @pytest.mark.parametrize("positions", [(1, 2), (1, 3), (2, 3), (3, 1)])
    def test_any_two_nodes_decrypt(self, positions):
        """Test reconstruction from any pair of nodes."""
        plaintext = b"threshold secret payload"
        result = self.crypto.encrypt([n.public_key_b64 for n in self.nodes], plaintext)

        recovered = self.crypto.decrypt(
            self._reencrypt(result, positions),
            self.consumer,
            result.nonce,
            result.ciphertext,
            list(positions)
        )
        assert recovered == plaintext

    def test_single_share_rejected(self):
        """Test that fewer than t shares fail."""
        result = self.crypto.encrypt([n.public_key_b64 for n in self.nodes], b"data")

        with pytest.raises(CryptoError):
            self.crypto.decrypt(
                self._reencrypt(result, [1]),
                self.consumer,
                result.nonce,
                result.ciphertext,
                [1]
            )

    def test_wrong_indices_fail(self):
        """Test that shares labelled with the wrong positions fail."""
        result = self.crypto.encrypt([n.public_key_b64 for n in self.nodes], b"data")

        with pytest.raises(CryptoError):
            self.crypto.decrypt(
                self._reencrypt(result, [1, 2]),
                self.consumer,
                result.nonce,
                result.ciphertext,
                [2, 3]
            )

    def test_wrong_consumer_fails(self):
        """Test that another consumer cannot open re-encrypted shares."""
        result = self.crypto.encrypt([n.public_key_b64 for n in self.nodes], b"data")

        with pytest.raises(CryptoError):
            self.crypto.decrypt(
                self._reencrypt(result, [1, 2]),
                generate_keypair(),
                result.nonce,
                result.ciphertext,
                [1, 2]
            )

    def test_too_few_node_keys(self):
        """Test that encrypting for fewer than t nodes fails."""
        with pytest.raises(CryptoError):
            self.crypto.encrypt([self.nodes[0].public_key_b64], b"data")


class TestWalletSigner:
    """Tests for the Ed25519 wallet signer."""

    def test_sign_verify(self):
        """Test that signatures verify against the signer's key."""
        signer = WalletSigner.generate()
        signature = signer.sign(b"body")

        assert verify_signature(signer.public_key_b64, signature, b"body")
        assert not verify_signature(signer.public_key_b64, signature, b"other")

    def test_load_or_generate_persists(self):
        """Test that the wallet key is reused across loads."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "wallet.key"
            first = WalletSigner.load_or_generate(path)
            second = WalletSigner.load_or_generate(path)
            assert first.public_key_b64 == second.public_key_b64
