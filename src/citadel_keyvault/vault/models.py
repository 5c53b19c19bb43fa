"""
Key Vault Data Models

Algorithm enums resolve labels through explicit lookup tables so that an
unknown label fails loudly with UnsupportedAlgorithm instead of falling
back to some default.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .exceptions import CorruptRecord, UnsupportedAlgorithm
from .primitives import NONCE_LENGTHS, SALT_LENGTH, WRAPPED_KEY_LENGTH


class CipherAlgorithm(str, Enum):
    """AEAD cipher protecting a key's content (256-bit keys)."""
    XCHACHA20_POLY1305 = "XChaCha20Poly1305"
    AES_256_GCM = "Aes256Gcm"

    @classmethod
    def from_label(cls, label) -> "CipherAlgorithm":
        if isinstance(label, cls):
            return label
        try:
            return _CIPHER_BY_LABEL[label]
        except (KeyError, TypeError):
            raise UnsupportedAlgorithm("cipher algorithm", label) from None

    @property
    def nonce_length(self) -> int:
        return NONCE_LENGTHS[self.value]

    @property
    def display_name(self) -> str:
        return _CIPHER_DISPLAY[self]


class HashingProfile(str, Enum):
    """Password hashing algorithm plus hardness tier."""
    ARGON2ID_STANDARD = "Argon2id-standard"
    ARGON2ID_HARDENED = "Argon2id-hardened"
    ARGON2ID_PARANOID = "Argon2id-paranoid"

    @classmethod
    def from_label(cls, label) -> "HashingProfile":
        if isinstance(label, cls):
            return label
        try:
            return _HASHING_BY_LABEL[label]
        except (KeyError, TypeError):
            raise UnsupportedAlgorithm("hashing profile", label) from None

    @property
    def display_name(self) -> str:
        return _HASHING_DISPLAY[self]


_CIPHER_BY_LABEL = {
    "XChaCha20Poly1305": CipherAlgorithm.XCHACHA20_POLY1305,
    "Aes256Gcm": CipherAlgorithm.AES_256_GCM,
}

_CIPHER_DISPLAY = {
    CipherAlgorithm.XCHACHA20_POLY1305: "XChaCha20-Poly1305",
    CipherAlgorithm.AES_256_GCM: "AES-256-GCM",
}

_HASHING_BY_LABEL = {
    "Argon2id-standard": HashingProfile.ARGON2ID_STANDARD,
    "Argon2id-hardened": HashingProfile.ARGON2ID_HARDENED,
    "Argon2id-paranoid": HashingProfile.ARGON2ID_PARANOID,
}

_HASHING_DISPLAY = {
    HashingProfile.ARGON2ID_STANDARD: "Argon2id (standard)",
    HashingProfile.ARGON2ID_HARDENED: "Argon2id (hardened)",
    HashingProfile.ARGON2ID_PARANOID: "Argon2id (paranoid)",
}


@dataclass
class KeyRecord:
    """One stored key: wrapped secrets plus the parameters to unwrap them."""
    uuid: str
    cipher_algorithm: CipherAlgorithm
    hashing_profile: HashingProfile
    kdf_salt: bytes = field(repr=False)
    wrapped_master_key: bytes = field(repr=False)
    master_key_nonce: bytes = field(repr=False)
    content_salt: bytes = field(repr=False)
    wrapped_content_key: bytes = field(repr=False)
    content_key_nonce: bytes = field(repr=False)
    name: Optional[str] = None
    is_default: bool = False
    automount: bool = False
    date_created: Optional[str] = None
    id: Optional[int] = field(default=None, repr=False)

    def validate_shape(self) -> None:
        """
        Check every salt, nonce and wrapped key has the expected length.

        Raises:
            CorruptRecord: On the first field with a wrong type or length.
        """
        nonce_length = self.cipher_algorithm.nonce_length
        expected = (
            ("kdf_salt", SALT_LENGTH),
            ("content_salt", SALT_LENGTH),
            ("master_key_nonce", nonce_length),
            ("content_key_nonce", nonce_length),
            ("wrapped_master_key", WRAPPED_KEY_LENGTH),
            ("wrapped_content_key", WRAPPED_KEY_LENGTH),
        )
        for field_name, length in expected:
            value = getattr(self, field_name)
            if not isinstance(value, (bytes, bytearray)):
                raise CorruptRecord(self.uuid, f"{field_name} is not binary")
            if len(value) != length:
                raise CorruptRecord(
                    self.uuid,
                    f"{field_name} has length {len(value)}, expected {length}",
                )

    def to_metadata(self) -> "KeyMetadata":
        return KeyMetadata(
            uuid=self.uuid,
            name=self.name,
            cipher_algorithm=self.cipher_algorithm,
            hashing_profile=self.hashing_profile,
            content_salt=bytes(self.content_salt),
            is_default=self.is_default,
            automount=self.automount,
            date_created=self.date_created,
        )


@dataclass(frozen=True)
class KeyMetadata:
    """Display-safe view of a key record (no wrapped or plaintext secrets)."""
    uuid: str
    name: Optional[str]
    cipher_algorithm: CipherAlgorithm
    hashing_profile: HashingProfile
    content_salt: bytes
    is_default: bool
    automount: bool
    date_created: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid,
            "name": self.name,
            "cipher_algorithm": self.cipher_algorithm.value,
            "hashing_profile": self.hashing_profile.value,
            "content_salt": self.content_salt.hex(),
            "is_default": self.is_default,
            "automount": self.automount,
            "date_created": self.date_created,
        }
