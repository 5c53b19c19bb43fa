"""Salt, nonce and key generation for the key vault.

All randomness comes from the OS CSPRNG (``secrets``). No bookkeeping is
done to detect repeats: with 128-bit salts and 96/192-bit nonces drawn
fresh for every record and every re-wrap, collisions are negligible.
"""

import secrets

KEY_LENGTH = 32    # 256-bit master, content and key-encryption keys
SALT_LENGTH = 16   # 128-bit salts (kdf_salt, content_salt)
TAG_LENGTH = 16    # Poly1305 / GCM authentication tag
SEED_LENGTH = 16   # per-operation content nonce seed

# Full AEAD nonce widths, keyed by cipher label
NONCE_LENGTHS = {
    "XChaCha20Poly1305": 24,
    "Aes256Gcm": 12,
}

# Size of a wrapped 32-byte key: ciphertext + tag
WRAPPED_KEY_LENGTH = KEY_LENGTH + TAG_LENGTH


def new_salt() -> bytes:
    """Generate a random 128-bit salt."""
    return secrets.token_bytes(SALT_LENGTH)


def new_nonce(algorithm) -> bytes:
    """Generate a random nonce sized for ``algorithm`` (a CipherAlgorithm)."""
    return secrets.token_bytes(algorithm.nonce_length)


def new_key() -> bytes:
    """Generate a random 256-bit key."""
    return secrets.token_bytes(KEY_LENGTH)


def new_seed() -> bytes:
    """Generate a random seed for per-operation nonce derivation."""
    return secrets.token_bytes(SEED_LENGTH)


def zeroize(buf: bytearray) -> None:
    """Overwrite a mutable buffer with zeros in place (best effort)."""
    for i in range(len(buf)):
        buf[i] = 0
