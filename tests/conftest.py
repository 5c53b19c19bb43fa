"""
Shared pytest fixtures for the key vault test suite.

Autouse fixtures below isolate tests from live data and keep them fast:
  - Config        -> temp key store + temp audit directory
  - Audit logger  -> fresh singleton per test, closed afterwards
  - Argon2id      -> tiny cost triples (tests marked ``real_kdf`` opt out)
"""

import pytest


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "real_kdf: run with the production Argon2id cost triples"
    )


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path):
    """Point the global config at a temp key store and audit directory.

    Without this, anything that falls back to ``get_config()`` would read
    the developer's environment and write into ``data/keyvault.db``.
    """
    from citadel_keyvault.core import config as config_mod

    old_config = config_mod._config
    config_mod.set_config(config_mod.VaultConfig(
        db_path=tmp_path / "keyvault.db",
        audit_dir=tmp_path / "audit_logs",
    ))

    yield

    config_mod.set_config(old_config)


@pytest.fixture(autouse=True)
def _isolate_audit_logs(_isolate_config):
    """Reset the AuditLogger singleton so each test logs into its temp dir."""
    import citadel_keyvault.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    yield

    if audit_mod._audit_logger is not None:
        audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _fast_kdf(request, monkeypatch):
    """Swap in cheap Argon2id costs; each tier still differs from the others."""
    if request.node.get_closest_marker("real_kdf"):
        return

    from citadel_keyvault.vault import hashing
    from citadel_keyvault.vault.models import HashingProfile

    monkeypatch.setattr(hashing, "HASHING_PARAMS", {
        HashingProfile.ARGON2ID_STANDARD: hashing.Argon2Params(memory_cost=1024, time_cost=1, parallelism=1),
        HashingProfile.ARGON2ID_HARDENED: hashing.Argon2Params(memory_cost=2048, time_cost=1, parallelism=1),
        HashingProfile.ARGON2ID_PARANOID: hashing.Argon2Params(memory_cost=4096, time_cost=2, parallelism=1),
    })


@pytest.fixture
def vault(tmp_path):
    from citadel_keyvault.vault import VaultManager

    return VaultManager(db_path=tmp_path / "vault.db")
