"""
Secret cipher — authenticated encryption of secrets at rest.

Private keys and device tokens never touch the database in the clear.
Each is sealed with XSalsa20-Poly1305 (NaCl secretbox) under the
store-wide key, which the caller supplies and this module never
derives or persists.

Blob layout:
    nonce (24 random bytes) || secretbox(secret) (ciphertext + 16-byte tag)
"""

from __future__ import annotations

import nacl.exceptions
import nacl.secret
import nacl.utils

from .errors import CryptoError

NONCE_SIZE = nacl.secret.SecretBox.NONCE_SIZE
KEY_SIZE = nacl.secret.SecretBox.KEY_SIZE


def _box(key: bytes, operation: str) -> nacl.secret.SecretBox:
    if len(key) != KEY_SIZE:
        raise CryptoError(
            f"invalid store key length {len(key)}", operation=operation, entity="store key",
        )
    return nacl.secret.SecretBox(bytes(key))


def generate_key() -> bytes:
    """Generate a random 32-byte store key."""
    return nacl.utils.random(KEY_SIZE)


def encrypt_secret(secret: bytes, key: bytes) -> bytes:
    """Seal a secret under the store key with a fresh random nonce.

    Args:
        secret: Plaintext bytes.
        key: 32-byte store key.

    Returns:
        nonce || ciphertext blob.

    Raises:
        CryptoError: If the key is not 32 bytes.
    """
    box = _box(key, "encrypt secret")
    nonce = nacl.utils.random(NONCE_SIZE)
    return bytes(box.encrypt(bytes(secret), nonce))


def decrypt_secret(blob: bytes, key: bytes) -> bytes:
    """Open a blob produced by :func:`encrypt_secret`.

    Args:
        blob: nonce || ciphertext.
        key: The same store key used to seal it.

    Returns:
        The original plaintext.

    Raises:
        CryptoError: If the blob is too short, the key is wrong, or the
            ciphertext was tampered with.
    """
    if len(blob) < NONCE_SIZE:
        raise CryptoError("invalid secret value", operation="decrypt secret")
    box = _box(key, "decrypt secret")
    try:
        return box.decrypt(bytes(blob[NONCE_SIZE:]), bytes(blob[:NONCE_SIZE]))
    except (nacl.exceptions.CryptoError, ValueError) as exc:
        raise CryptoError("decrypt failed", operation="decrypt secret") from exc
