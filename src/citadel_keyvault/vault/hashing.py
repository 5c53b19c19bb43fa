# Key Vault - Key Derivation Engine
#
# Passphrase + kdf_salt + hashing profile → 256-bit key-encryption key (KEK)
# via Argon2id. Derivation is deterministic and never validates the
# passphrase; a wrong passphrase only shows up when the KEK fails to unwrap
# the master key.

from dataclasses import dataclass
from typing import Union

from argon2.low_level import Type, hash_secret_raw

from .models import HashingProfile
from .primitives import KEY_LENGTH, SALT_LENGTH


@dataclass(frozen=True)
class Argon2Params:
    """Argon2id cost triple."""
    memory_cost: int   # KiB
    time_cost: int     # iterations
    parallelism: int   # lanes


# Each tier costs more memory and time than the one before it.
HASHING_PARAMS = {
    HashingProfile.ARGON2ID_STANDARD: Argon2Params(memory_cost=65_536, time_cost=3, parallelism=4),    # 64 MiB
    HashingProfile.ARGON2ID_HARDENED: Argon2Params(memory_cost=262_144, time_cost=4, parallelism=4),   # 256 MiB
    HashingProfile.ARGON2ID_PARANOID: Argon2Params(memory_cost=524_288, time_cost=6, parallelism=4),   # 512 MiB
}


def params_for(profile: HashingProfile) -> Argon2Params:
    """Return the cost triple for a hashing profile."""
    return HASHING_PARAMS[HashingProfile.from_label(profile)]


def derive_kek(
    passphrase: Union[str, bytes],
    salt: bytes,
    profile: HashingProfile,
) -> bytes:
    """
    Derive a key-encryption key from a passphrase.

    Args:
        passphrase: User passphrase (str is UTF-8 encoded)
        salt: The record's 16-byte kdf_salt
        profile: Hashing profile selecting the Argon2id costs

    Returns:
        32-byte KEK

    Raises:
        ValueError: If the salt has the wrong length.
        UnsupportedAlgorithm: If the profile is not recognised.
    """
    if len(salt) != SALT_LENGTH:
        raise ValueError(f"KDF salt must be {SALT_LENGTH} bytes; got {len(salt)}")

    params = params_for(profile)
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")

    return hash_secret_raw(
        secret=bytes(passphrase),
        salt=bytes(salt),
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=KEY_LENGTH,
        type=Type.ID,
    )
