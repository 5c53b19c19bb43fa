# Vault Module - Encrypted Key Vault
#
# Passphrase-protected key records in SQLite:
# Argon2id key derivation, XChaCha20-Poly1305 / AES-256-GCM key wrapping

from .encryption import EncryptionService
from .exceptions import (
    AuthenticationFailed,
    CorruptRecord,
    InvariantViolation,
    NotFound,
    UnsupportedAlgorithm,
    VaultError,
    WrongPassphrase,
)
from .key_store import KeyStore
from .models import CipherAlgorithm, HashingProfile, KeyMetadata, KeyRecord
from .vault_manager import VaultManager

__all__ = [
    "VaultManager",
    "KeyStore",
    "EncryptionService",
    "CipherAlgorithm",
    "HashingProfile",
    "KeyRecord",
    "KeyMetadata",
    "VaultError",
    "WrongPassphrase",
    "UnsupportedAlgorithm",
    "CorruptRecord",
    "NotFound",
    "InvariantViolation",
    "AuthenticationFailed",
]
