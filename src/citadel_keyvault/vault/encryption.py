# Key Vault - Authenticated Wrap/Unwrap Engine
#
# Key material is wrapped with an AEAD cipher chosen per key record:
#   - AES-256-GCM (cryptography)
#   - XChaCha20-Poly1305 (libsodium via PyNaCl)
# Unwrap fails closed: any tag mismatch raises AuthenticationFailed and no
# plaintext is returned.

from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from nacl import bindings as sodium
from nacl.exceptions import CryptoError

from .exceptions import AuthenticationFailed
from .models import CipherAlgorithm
from .primitives import KEY_LENGTH, SEED_LENGTH

CONTENT_NONCE_INFO = b"citadel-keyvault:content-nonce:v1"


class EncryptionService:
    """
    AEAD wrap/unwrap for key material and content.

    Flow for a key record:
    1. KEK (from passphrase) wraps the master key
    2. Master key wraps the content key
    3. Content key encrypts user content, one derived nonce per operation

    The caller supplies every nonce and must never reuse one under the
    same key.
    """

    KEY_LENGTH = KEY_LENGTH

    @staticmethod
    def _check_inputs(key: bytes, nonce: bytes, algorithm: CipherAlgorithm) -> None:
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Key must be {KEY_LENGTH} bytes; got {len(key)}")
        if len(nonce) != algorithm.nonce_length:
            raise ValueError(
                f"{algorithm.value} nonce must be {algorithm.nonce_length} bytes; got {len(nonce)}"
            )

    @staticmethod
    def wrap(
        plaintext: bytes,
        key: bytes,
        nonce: bytes,
        algorithm: CipherAlgorithm,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Encrypt and authenticate ``plaintext``.

        Args:
            plaintext: Key material or content to protect
            key: 256-bit wrapping key
            nonce: Fresh nonce of the algorithm's length
            algorithm: AEAD cipher
            aad: Associated data bound to the ciphertext

        Returns:
            ciphertext with the 16-byte tag appended
        """
        algorithm = CipherAlgorithm.from_label(algorithm)
        EncryptionService._check_inputs(key, nonce, algorithm)

        if algorithm is CipherAlgorithm.AES_256_GCM:
            return AESGCM(bytes(key)).encrypt(bytes(nonce), bytes(plaintext), aad)

        return sodium.crypto_aead_xchacha20poly1305_ietf_encrypt(
            bytes(plaintext), aad, bytes(nonce), bytes(key)
        )

    @staticmethod
    def unwrap(
        ciphertext: bytes,
        key: bytes,
        nonce: bytes,
        algorithm: CipherAlgorithm,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Authenticate and decrypt ``ciphertext``.

        Raises:
            AuthenticationFailed: Wrong key, wrong nonce, wrong AAD or
                                  tampered ciphertext.
        """
        algorithm = CipherAlgorithm.from_label(algorithm)
        EncryptionService._check_inputs(key, nonce, algorithm)

        try:
            if algorithm is CipherAlgorithm.AES_256_GCM:
                return AESGCM(bytes(key)).decrypt(bytes(nonce), bytes(ciphertext), aad)
            return sodium.crypto_aead_xchacha20poly1305_ietf_decrypt(
                bytes(ciphertext), aad, bytes(nonce), bytes(key)
            )
        except (InvalidTag, CryptoError):
            raise AuthenticationFailed(f"{algorithm.value} authentication failed") from None

    @staticmethod
    def derive_content_nonce(
        seed: bytes,
        content_salt: bytes,
        algorithm: CipherAlgorithm,
    ) -> bytes:
        """
        Derive a per-operation content nonce from a random seed.

        HKDF-SHA256 over the seed, salted with the record's content_salt,
        truncated to the cipher's nonce length.
        """
        if len(seed) != SEED_LENGTH:
            raise ValueError(f"Nonce seed must be {SEED_LENGTH} bytes; got {len(seed)}")

        algorithm = CipherAlgorithm.from_label(algorithm)
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=algorithm.nonce_length,
            salt=bytes(content_salt),
            info=CONTENT_NONCE_INFO,
        )
        return hkdf.derive(bytes(seed))
