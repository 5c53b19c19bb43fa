"""
Key Vault Exception Classes

Messages carry key uuids and algorithm labels only, never key material.
"""


class VaultError(Exception):
    """Base exception for key vault operations"""
    pass


class WrongPassphrase(VaultError):
    """Raised when a key cannot be unwrapped with the supplied passphrase"""

    def __init__(self, key_uuid: str):
        self.key_uuid = key_uuid
        super().__init__(f"Incorrect passphrase for key {key_uuid}")


class UnsupportedAlgorithm(VaultError):
    """Raised when a cipher or hashing label is not implemented"""

    def __init__(self, kind: str, label):
        self.kind = kind
        self.label = label
        super().__init__(f"Unsupported {kind}: {label!r}")


class CorruptRecord(VaultError):
    """Raised when stored key bytes fail shape validation"""

    def __init__(self, key_uuid: str, reason: str):
        self.key_uuid = key_uuid
        self.reason = reason
        super().__init__(f"Corrupt key record {key_uuid}: {reason}")


class NotFound(VaultError):
    """Raised when no key record matches a uuid"""

    def __init__(self, key_uuid: str):
        self.key_uuid = key_uuid
        super().__init__(f"No key with uuid {key_uuid}")


class InvariantViolation(VaultError):
    """Raised when a write would break uuid or default-key uniqueness"""
    pass


class AuthenticationFailed(VaultError):
    """Raised when AEAD authentication fails (wrong key, nonce or tampering)"""
    pass
