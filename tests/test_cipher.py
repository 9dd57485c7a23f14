"""Tests for the at-rest secret cipher."""

from __future__ import annotations

import os

import pytest

from meshgarden.cipher import NONCE_SIZE, decrypt_secret, encrypt_secret, generate_key
from meshgarden.errors import CryptoError


@pytest.fixture
def key() -> bytes:
    return generate_key()


class TestSecretCipher:
    def test_hello_secret(self, key):
        """Encrypt then decrypt with the same key returns the plaintext."""
        blob = encrypt_secret(b"hello-secret", key)
        assert decrypt_secret(blob, key) == b"hello-secret"

    def test_wrong_key_fails(self, key):
        blob = encrypt_secret(b"hello-secret", key)
        with pytest.raises(CryptoError) as exc_info:
            decrypt_secret(blob, generate_key())
        assert exc_info.value.fatal

    @pytest.mark.parametrize("position", [0, NONCE_SIZE, -1])
    def test_flipped_bit_fails(self, key, position):
        blob = bytearray(encrypt_secret(b"hello-secret", key))
        blob[position] ^= 0x01
        with pytest.raises(CryptoError):
            decrypt_secret(bytes(blob), key)

    def test_blob_layout(self, key):
        """Blob is a 24-byte nonce followed by ciphertext and 16-byte tag."""
        secret = os.urandom(32)
        blob = encrypt_secret(secret, key)
        assert len(blob) == NONCE_SIZE + len(secret) + 16
        assert secret not in blob

    def test_fresh_nonce_every_call(self, key):
        first = encrypt_secret(b"same", key)
        second = encrypt_secret(b"same", key)
        assert first[:NONCE_SIZE] != second[:NONCE_SIZE]
        assert first != second

    def test_empty_secret(self, key):
        assert decrypt_secret(encrypt_secret(b"", key), key) == b""

    @pytest.mark.parametrize("size", [0, 10, NONCE_SIZE - 1])
    def test_short_blob_fails(self, key, size):
        with pytest.raises(CryptoError) as exc_info:
            decrypt_secret(os.urandom(size), key)
        assert "invalid secret value" in str(exc_info.value)

    def test_nonce_only_blob_fails(self, key):
        with pytest.raises(CryptoError):
            decrypt_secret(os.urandom(NONCE_SIZE), key)

    def test_bad_key_length(self):
        with pytest.raises(CryptoError):
            encrypt_secret(b"data", b"short")
        with pytest.raises(CryptoError):
            decrypt_secret(os.urandom(64), b"short")
