"""
Configuration for the Citadel key vault.

Values come from environment variables; a ``.env`` file in the working
directory is loaded first (python-dotenv) without overriding variables that
are already set.

    CITADEL_KEYVAULT_DB         SQLite key store path   (data/keyvault.db)
    CITADEL_KEYVAULT_AUDIT_DIR  audit log directory     (./audit_logs)
    CITADEL_KEYVAULT_CIPHER     default cipher label    (XChaCha20Poly1305)
    CITADEL_KEYVAULT_HASHING    default hashing label   (Argon2id-standard)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from ..vault.models import CipherAlgorithm, HashingProfile

ENV_DB_PATH = "CITADEL_KEYVAULT_DB"
ENV_AUDIT_DIR = "CITADEL_KEYVAULT_AUDIT_DIR"
ENV_CIPHER = "CITADEL_KEYVAULT_CIPHER"
ENV_HASHING = "CITADEL_KEYVAULT_HASHING"


@dataclass
class VaultConfig:
    """Runtime settings for the key vault."""

    db_path: Path = Path("data/keyvault.db")
    audit_dir: Path = Path("./audit_logs")
    default_cipher: CipherAlgorithm = CipherAlgorithm.XCHACHA20_POLY1305
    default_hashing: HashingProfile = HashingProfile.ARGON2ID_STANDARD
    env_file: Optional[Path] = field(default=None, repr=False)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "VaultConfig":
        """
        Build a config from the process environment.

        Args:
            env_file: Explicit .env file. If None, python-dotenv searches
                      for one starting from the working directory.

        Raises:
            UnsupportedAlgorithm: If the cipher or hashing default is not
                                  a recognised label.
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)
        else:
            load_dotenv(override=False)

        return cls(
            db_path=Path(os.getenv(ENV_DB_PATH, "data/keyvault.db")),
            audit_dir=Path(os.getenv(ENV_AUDIT_DIR, "./audit_logs")),
            default_cipher=CipherAlgorithm.from_label(
                os.getenv(ENV_CIPHER, CipherAlgorithm.XCHACHA20_POLY1305.value)
            ),
            default_hashing=HashingProfile.from_label(
                os.getenv(ENV_HASHING, HashingProfile.ARGON2ID_STANDARD.value)
            ),
            env_file=env_file,
        )


# Global config instance
_config: Optional[VaultConfig] = None


def get_config() -> VaultConfig:
    """Get global config (loaded from the environment on first use)."""
    global _config
    if _config is None:
        _config = VaultConfig.from_env()
    return _config


def set_config(config: Optional[VaultConfig]) -> None:
    """Replace the global config. Pass None to reload on next access."""
    global _config
    _config = config
