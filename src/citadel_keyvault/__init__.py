# Citadel Key Vault - Main Package
#
# Local encrypted key vault: passphrase-protected content keys with
# selectable AEAD ciphers and Argon2id hardness tiers.

__version__ = "0.1.0"
__author__ = "Citadel Archer Team"
__description__ = "Local encrypted key vault"

from .core import (
    EventType,
    EventSeverity,
    get_audit_logger,
)
from .vault import (
    CipherAlgorithm,
    HashingProfile,
    VaultError,
    VaultManager,
)

__all__ = [
    "__version__",
    "VaultManager",
    "VaultError",
    "CipherAlgorithm",
    "HashingProfile",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
