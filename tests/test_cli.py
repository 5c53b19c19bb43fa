"""
Tests for the citadel-keyvault command line.

Passphrases come from a patched getpass; every command runs through
main() and exits via SystemExit.
"""

import json

import pytest

from citadel_keyvault import __main__ as cli


def run_cli(argv, passphrases=()):
    """Run main(argv) feeding ``passphrases`` to getpass; return exit code."""
    answers = iter(passphrases)
    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(cli.getpass, "getpass", lambda prompt="": next(answers))
        with pytest.raises(SystemExit) as exc_info:
            cli.main(argv)
    return exc_info.value.code


@pytest.fixture
def db(tmp_path):
    return str(tmp_path / "cli.db")


def add_key(db, capsys, *extra, passphrase="pw"):
    assert run_cli(["--db", db, "add", *extra], [passphrase, passphrase]) == 0
    return capsys.readouterr().out.strip()


def list_keys(db, capsys):
    assert run_cli(["--db", db, "list"]) == 0
    return json.loads(capsys.readouterr().out)


class TestCommands:

    def test_list_empty(self, db, capsys):
        assert list_keys(db, capsys) == []

    def test_add_and_list(self, db, capsys):
        key_uuid = add_key(db, capsys, "--name", "Photos", "--cipher", "Aes256Gcm")
        [key] = list_keys(db, capsys)
        assert key["uuid"] == key_uuid
        assert key["name"] == "Photos"
        assert key["cipher_algorithm"] == "Aes256Gcm"
        assert key["hashing_profile"] == "Argon2id-standard"
        assert "wrapped_master_key" not in key

    def test_add_uses_configured_defaults(self, db, capsys):
        add_key(db, capsys)
        [key] = list_keys(db, capsys)
        assert key["cipher_algorithm"] == "XChaCha20Poly1305"

    def test_add_confirmation_mismatch(self, db, capsys):
        code = run_cli(["--db", db, "add"], ["one", "two"])
        assert code == "Passphrases do not match"
        assert list_keys(db, capsys) == []

    def test_add_unknown_cipher(self, db, capsys):
        assert run_cli(["--db", db, "add", "--cipher", "Blowfish"], ["pw", "pw"]) == 1
        assert "Blowfish" in capsys.readouterr().err

    def test_set_and_clear_default(self, db, capsys):
        first = add_key(db, capsys)
        second = add_key(db, capsys)
        assert run_cli(["--db", db, "set-default", second]) == 0
        defaults = {k["uuid"]: k["is_default"] for k in list_keys(db, capsys)}
        assert defaults == {first: False, second: True}

        assert run_cli(["--db", db, "clear-default"]) == 0
        assert not any(k["is_default"] for k in list_keys(db, capsys))

    def test_verify(self, db, capsys):
        key_uuid = add_key(db, capsys, passphrase="correct horse")
        assert run_cli(["--db", db, "verify", key_uuid], ["correct horse"]) == 0
        assert "Passphrase OK" in capsys.readouterr().out
        assert run_cli(["--db", db, "verify", key_uuid], ["wrong horse"]) == 1
        assert "Incorrect passphrase" in capsys.readouterr().out

    def test_change_passphrase(self, db, capsys):
        key_uuid = add_key(db, capsys, passphrase="old")
        assert run_cli(["--db", db, "change-passphrase", key_uuid], ["old", "new", "new"]) == 0
        assert run_cli(["--db", db, "verify", key_uuid], ["new"]) == 0

    def test_change_passphrase_wrong_old(self, db, capsys):
        key_uuid = add_key(db, capsys, passphrase="old")
        assert run_cli(["--db", db, "change-passphrase", key_uuid], ["bad", "new", "new"]) == 1
        assert "Incorrect passphrase" in capsys.readouterr().err

    def test_rename_and_automount(self, db, capsys):
        key_uuid = add_key(db, capsys)
        assert run_cli(["--db", db, "rename", key_uuid, "Archive"]) == 0
        assert run_cli(["--db", db, "automount", key_uuid, "on"]) == 0
        [key] = list_keys(db, capsys)
        assert key["name"] == "Archive"
        assert key["automount"] is True

    def test_remove_default(self, db, capsys):
        key_uuid = add_key(db, capsys, "--default")
        assert run_cli(["--db", db, "remove", key_uuid]) == 0
        assert "no default key" in capsys.readouterr().out
        assert list_keys(db, capsys) == []

    def test_remove_missing(self, db, capsys):
        assert run_cli(["--db", db, "remove", "00000000-0000-0000-0000-000000000000"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_backup_and_restore(self, db, capsys, tmp_path):
        key_uuid = add_key(db, capsys, passphrase="pw")
        backup = tmp_path / "keys.json"
        assert run_cli(["--db", db, "backup", str(backup)]) == 0
        assert "1 keys written" in capsys.readouterr().out

        other = str(tmp_path / "other.db")
        assert run_cli(["--db", other, "restore", str(backup)]) == 0
        assert "1 keys imported" in capsys.readouterr().out
        assert run_cli(["--db", other, "verify", key_uuid], ["pw"]) == 0

    def test_restore_bad_backup_reports_error(self, db, capsys, tmp_path):
        add_key(db, capsys)
        add_key(db, capsys)
        backup = tmp_path / "keys.json"
        assert run_cli(["--db", db, "backup", str(backup)]) == 0
        payload = json.loads(backup.read_text())
        payload["keys"][1]["name"] = {"nested": "label"}
        backup.write_text(json.dumps(payload))
        capsys.readouterr()

        other = str(tmp_path / "other.db")
        assert run_cli(["--db", other, "restore", str(backup)]) == 1
        assert "Error:" in capsys.readouterr().err
        assert list_keys(other, capsys) == []

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])
        assert exc_info.value.code == 0
        assert "citadel-keyvault v" in capsys.readouterr().out


class TestAuditTrail:

    def test_cli_invocation_logged(self, db, capsys):
        from citadel_keyvault.core import get_audit_logger

        list_keys(db, capsys)
        lines = get_audit_logger().log_file.read_text(encoding="utf-8").splitlines()
        event = json.loads(lines[0])
        assert event["event_type"] == "system.start"
        assert event["details"]["command"] == "list"
