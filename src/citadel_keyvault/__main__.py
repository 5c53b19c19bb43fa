# Main Entry Point - Key Vault Administration CLI
#
# Thin argparse front-end over VaultManager. Passphrases are read with
# getpass and key material is never printed.

import argparse
import getpass
import json
import sys
from pathlib import Path

from . import __version__
from .core import EventSeverity, EventType, get_audit_logger
from .core.config import get_config
from .vault import VaultError, VaultManager


def _read_passphrase(prompt: str = "Passphrase: ", confirm: bool = False) -> str:
    passphrase = getpass.getpass(prompt)
    if confirm and getpass.getpass("Confirm passphrase: ") != passphrase:
        raise SystemExit("Passphrases do not match")
    return passphrase


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def build_parser() -> argparse.ArgumentParser:
    config = get_config()

    parser = argparse.ArgumentParser(
        prog="citadel-keyvault",
        description="Citadel key vault - manage passphrase-protected content keys",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help=f"Key store database (default: {config.db_path})",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"citadel-keyvault v{__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List keys (metadata only)")

    add = sub.add_parser("add", help="Add a new key")
    add.add_argument("--name", default=None, help="Human label")
    add.add_argument(
        "--cipher",
        default=config.default_cipher.value,
        help="XChaCha20Poly1305 or Aes256Gcm",
    )
    add.add_argument(
        "--hashing",
        default=config.default_hashing.value,
        help="Argon2id-standard, Argon2id-hardened or Argon2id-paranoid",
    )
    add.add_argument("--automount", action="store_true", help="Flag for automount")
    add.add_argument("--default", action="store_true", help="Make it the default key")

    for name, help_text in (
        ("set-default", "Make a key the default"),
        ("remove", "Delete a key"),
        ("verify", "Check a passphrase against a key"),
        ("change-passphrase", "Re-protect a key under a new passphrase"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("uuid")

    sub.add_parser("clear-default", help="Leave no default key")

    rename = sub.add_parser("rename", help="Rename a key")
    rename.add_argument("uuid")
    rename.add_argument("name")

    automount = sub.add_parser("automount", help="Toggle the automount flag")
    automount.add_argument("uuid")
    automount.add_argument("state", choices=["on", "off"])

    backup = sub.add_parser("backup", help="Write wrapped keys to a JSON file")
    backup.add_argument("path", type=Path)

    restore = sub.add_parser("restore", help="Import wrapped keys from a JSON file")
    restore.add_argument("path", type=Path)

    return parser


def run(args: argparse.Namespace) -> int:
    """Execute one parsed command. Returns the process exit code."""
    vault = VaultManager(db_path=args.db)

    if args.command == "list":
        _print_json([key.to_dict() for key in vault.list_keys()])
    elif args.command == "add":
        passphrase = _read_passphrase(confirm=True)
        key_uuid = vault.add_key(
            passphrase,
            args.cipher,
            args.hashing,
            name=args.name,
            automount=args.automount,
            is_default=args.default,
        )
        print(key_uuid)
    elif args.command == "set-default":
        vault.set_default_key(args.uuid)
    elif args.command == "clear-default":
        vault.clear_default_key()
    elif args.command == "rename":
        vault.rename_key(args.uuid, args.name)
    elif args.command == "remove":
        if vault.remove_key(args.uuid):
            print("Removed the default key; no default key is set now.")
    elif args.command == "automount":
        vault.set_automount(args.uuid, args.state == "on")
    elif args.command == "verify":
        if not vault.verify_passphrase(args.uuid, _read_passphrase()):
            print("Incorrect passphrase")
            return 1
        print("Passphrase OK")
    elif args.command == "change-passphrase":
        old = _read_passphrase("Current passphrase: ")
        new = _read_passphrase("New passphrase: ", confirm=True)
        vault.change_passphrase(args.uuid, old, new)
    elif args.command == "backup":
        print(f"{vault.backup_keystore(args.path)} keys written to {args.path}")
    elif args.command == "restore":
        print(f"{vault.restore_keystore(args.path)} keys imported from {args.path}")
    return 0


def main(argv=None):
    """Main entry point for the key vault CLI."""
    args = build_parser().parse_args(argv)

    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="Key vault CLI invoked",
        details={"version": __version__, "command": args.command},
    )

    try:
        code = run(args)
    except VaultError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
