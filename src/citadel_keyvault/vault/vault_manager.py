# Key Vault Manager - Façade over derivation, wrapping and the key store
#
# Key hierarchy per record:
#   passphrase + kdf_salt --Argon2id--> KEK
#   KEK      wraps master key   (master_key_nonce)
#   master   wraps content key  (content_key_nonce)
#   content key encrypts content (nonce derived from content_salt + seed)
#
# The manager holds no unlocked state: every call that needs the content
# key re-derives it from the supplied passphrase, and plaintext keys live
# only in local buffers that are zeroed before returning.

import asyncio
import base64
import json
import logging
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..core import EventSeverity, EventType, get_audit_logger
from . import primitives
from .encryption import EncryptionService
from .exceptions import (
    AuthenticationFailed,
    CorruptRecord,
    UnsupportedAlgorithm,
    WrongPassphrase,
)
from .hashing import derive_kek
from .key_store import KeyStore
from .models import CipherAlgorithm, HashingProfile, KeyMetadata, KeyRecord

logger = logging.getLogger(__name__)

Passphrase = Union[str, bytes]

BACKUP_FORMAT_VERSION = 1
_BINARY_FIELDS = (
    "kdf_salt", "wrapped_master_key", "master_key_nonce",
    "content_salt", "wrapped_content_key", "content_key_nonce",
)


class VaultManager:
    """
    Manages the encrypted key vault.

    Security:
    - Master and content keys are generated randomly per record and only
      ever persisted in wrapped form
    - Both wraps are authenticated with the record uuid as associated data
    - Unwrap failures at either stage surface identically as WrongPassphrase
    - Audit logging for every administrative and resolve operation
    """

    def __init__(
        self,
        store: Optional[KeyStore] = None,
        db_path: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize vault manager.

        Args:
            store: Key store to use. If None, one is opened at db_path.
            db_path: Key store path (default: configured path)
        """
        self.store = store if store is not None else KeyStore(db_path)
        self.audit = get_audit_logger()

    # ── Administration ───────────────────────────────────────────────

    def add_key(
        self,
        passphrase: Passphrase,
        cipher_algorithm: Union[CipherAlgorithm, str],
        hashing_profile: Union[HashingProfile, str],
        name: Optional[str] = None,
        automount: bool = False,
        is_default: bool = False,
    ) -> str:
        """
        Create a key protected by ``passphrase``.

        Fresh salts, nonces, master key and content key are generated for
        every call.

        Args:
            passphrase: Passphrase that will unlock the key
            cipher_algorithm: AEAD cipher for this key
            hashing_profile: Argon2id hardness tier for the passphrase
            name: Optional human label
            automount: Flag for the external mounting subsystem
            is_default: Make this the default key (clears the previous one)

        Returns:
            uuid of the new key

        Raises:
            UnsupportedAlgorithm: Unknown cipher or hashing label
        """
        cipher_algorithm = CipherAlgorithm.from_label(cipher_algorithm)
        hashing_profile = HashingProfile.from_label(hashing_profile)

        key_uuid = str(uuid.uuid4())
        aad = key_uuid.encode("ascii")

        kdf_salt = primitives.new_salt()
        content_salt = primitives.new_salt()
        master_key_nonce = primitives.new_nonce(cipher_algorithm)
        content_key_nonce = primitives.new_nonce(cipher_algorithm)

        kek = bytearray(derive_kek(passphrase, kdf_salt, hashing_profile))
        master_key = bytearray(primitives.new_key())
        content_key = bytearray(primitives.new_key())
        try:
            wrapped_master_key = EncryptionService.wrap(
                master_key, kek, master_key_nonce, cipher_algorithm, aad
            )
            wrapped_content_key = EncryptionService.wrap(
                content_key, master_key, content_key_nonce, cipher_algorithm, aad
            )
        finally:
            primitives.zeroize(kek)
            primitives.zeroize(master_key)
            primitives.zeroize(content_key)

        record = KeyRecord(
            uuid=key_uuid,
            name=name,
            is_default=is_default,
            automount=automount,
            cipher_algorithm=cipher_algorithm,
            hashing_profile=hashing_profile,
            kdf_salt=kdf_salt,
            wrapped_master_key=wrapped_master_key,
            master_key_nonce=master_key_nonce,
            content_salt=content_salt,
            wrapped_content_key=wrapped_content_key,
            content_key_nonce=content_key_nonce,
        )
        self.store.insert(record)

        self.audit.log_key_event(
            EventType.KEY_ADDED,
            key_uuid,
            "key added",
            details={
                "cipher_algorithm": cipher_algorithm.value,
                "hashing_profile": hashing_profile.value,
                "is_default": is_default,
                "automount": automount,
            },
        )
        return key_uuid

    def list_keys(self) -> List[KeyMetadata]:
        """List all keys (metadata only, oldest first)."""
        return [record.to_metadata() for record in self.store.list()]

    def get_key(self, key_uuid: str) -> KeyMetadata:
        """Metadata for one key. Raises NotFound."""
        return self.store.get(key_uuid).to_metadata()

    def get_default_key(self) -> Optional[KeyMetadata]:
        """Metadata for the default key, or None when no default is set."""
        record = self.store.get_default()
        return record.to_metadata() if record else None

    def set_default_key(self, key_uuid: str) -> None:
        """Make ``key_uuid`` the only default key. Raises NotFound."""
        self.store.set_default(key_uuid)
        self.audit.log_key_event(EventType.KEY_DEFAULT_CHANGED, key_uuid, "default key set")

    def clear_default_key(self) -> None:
        """Leave the vault without a default key."""
        if self.store.clear_default():
            self.audit.log_event(
                event_type=EventType.KEY_DEFAULT_CHANGED,
                severity=EventSeverity.INFO,
                message="Key vault: default key cleared",
            )

    def rename_key(self, key_uuid: str, name: Optional[str]) -> None:
        """Change a key's label. Raises NotFound."""
        self.store.update_name(key_uuid, name)
        self.audit.log_key_event(EventType.KEY_RENAMED, key_uuid, "key renamed")

    def set_automount(self, key_uuid: str, enabled: bool) -> None:
        """Toggle the automount flag. Raises NotFound."""
        self.store.update_automount(key_uuid, enabled)
        self.audit.log_key_event(
            EventType.KEY_AUTOMOUNT_CHANGED,
            key_uuid,
            f"automount {'enabled' if enabled else 'disabled'}",
            details={"automount": enabled},
        )

    def list_automount_keys(self) -> List[KeyMetadata]:
        """Keys the mounting subsystem should unlock at startup."""
        return [record.to_metadata() for record in self.store.list_automount()]

    def remove_key(self, key_uuid: str) -> bool:
        """
        Delete a key.

        Returns:
            True if the removed key was the default; the vault then has no
            default key until one is chosen.

        Raises:
            NotFound: No such key
        """
        was_default = self.store.delete(key_uuid)
        self.audit.log_key_event(
            EventType.KEY_REMOVED,
            key_uuid,
            "key removed",
            details={"was_default": was_default},
        )
        return was_default

    # ── Key resolution ───────────────────────────────────────────────

    def _unwrap_master_key(self, record: KeyRecord, passphrase: Passphrase) -> bytearray:
        aad = record.uuid.encode("ascii")
        kek = bytearray(derive_kek(passphrase, record.kdf_salt, record.hashing_profile))
        try:
            return bytearray(EncryptionService.unwrap(
                record.wrapped_master_key,
                kek,
                record.master_key_nonce,
                record.cipher_algorithm,
                aad,
            ))
        finally:
            primitives.zeroize(kek)

    def _unlock(self, record: KeyRecord, passphrase: Passphrase) -> Tuple[bytearray, bytearray]:
        """
        Unwrap both stages and return (master_key, content_key).

        Either failure becomes WrongPassphrase. Callers zero both buffers.
        """
        master_key = None
        try:
            master_key = self._unwrap_master_key(record, passphrase)
            content_key = bytearray(EncryptionService.unwrap(
                record.wrapped_content_key,
                master_key,
                record.content_key_nonce,
                record.cipher_algorithm,
                record.uuid.encode("ascii"),
            ))
        except AuthenticationFailed:
            if master_key is not None:
                primitives.zeroize(master_key)
            self.audit.log_key_event(
                EventType.KEY_RESOLVE_FAILED,
                record.uuid,
                "passphrase rejected",
                severity=EventSeverity.INVESTIGATE,
            )
            raise WrongPassphrase(record.uuid) from None
        return master_key, content_key

    def _resolve(self, record: KeyRecord, passphrase: Passphrase) -> bytearray:
        master_key, content_key = self._unlock(record, passphrase)
        primitives.zeroize(master_key)
        return content_key

    def _load(self, key_uuid: str) -> KeyRecord:
        try:
            return self.store.get(key_uuid)
        except (CorruptRecord, UnsupportedAlgorithm) as e:
            self.audit.log_key_event(
                EventType.VAULT_ERROR,
                key_uuid,
                f"unusable key record: {e}",
                severity=EventSeverity.ALERT,
            )
            raise

    def resolve_content_key(self, key_uuid: str, passphrase: Passphrase) -> bytes:
        """
        Unlock a key's content key with its passphrase.

        The returned key belongs to the caller's single operation: do not
        retain or persist it. Prefer ``content_key()`` which erases its
        buffer automatically.

        Raises:
            NotFound: No such key
            WrongPassphrase: Either unwrap stage failed
            CorruptRecord, UnsupportedAlgorithm: Unusable stored record
        """
        record = self._load(key_uuid)
        content_key = self._resolve(record, passphrase)
        try:
            result = bytes(content_key)
        finally:
            primitives.zeroize(content_key)

        self.audit.log_key_event(EventType.KEY_RESOLVED, key_uuid, "content key resolved")
        return result

    @contextmanager
    def content_key(self, key_uuid: str, passphrase: Passphrase) -> Iterator[bytearray]:
        """
        Yield the content key in a mutable buffer that is zeroed on exit.

        Usage:
            with vault.content_key(key_uuid, passphrase) as key:
                cipher = AESGCM(bytes(key))
        """
        record = self._load(key_uuid)
        content_key = self._resolve(record, passphrase)
        self.audit.log_key_event(EventType.KEY_RESOLVED, key_uuid, "content key resolved")
        try:
            yield content_key
        finally:
            primitives.zeroize(content_key)

    async def resolve_content_key_async(self, key_uuid: str, passphrase: Passphrase) -> bytes:
        """Run resolve_content_key in a worker thread (Argon2id is CPU-bound)."""
        return await asyncio.to_thread(self.resolve_content_key, key_uuid, passphrase)

    def verify_passphrase(self, key_uuid: str, passphrase: Passphrase) -> bool:
        """True if ``passphrase`` unlocks the key. Raises NotFound."""
        record = self._load(key_uuid)
        try:
            content_key = self._resolve(record, passphrase)
        except WrongPassphrase:
            return False
        primitives.zeroize(content_key)
        return True

    def change_passphrase(
        self,
        key_uuid: str,
        old_passphrase: Passphrase,
        new_passphrase: Passphrase,
    ) -> None:
        """
        Re-protect a key's master key under a new passphrase.

        A fresh kdf_salt and master_key_nonce are generated; the master and
        content keys themselves are unchanged, so existing content stays
        readable.

        Raises:
            NotFound: No such key
            WrongPassphrase: ``old_passphrase`` is wrong
        """
        record = self._load(key_uuid)
        # Both stages must open before the master key is re-wrapped
        master_key, content_key = self._unlock(record, old_passphrase)
        primitives.zeroize(content_key)

        kdf_salt = primitives.new_salt()
        master_key_nonce = primitives.new_nonce(record.cipher_algorithm)
        kek = bytearray(derive_kek(new_passphrase, kdf_salt, record.hashing_profile))
        try:
            wrapped_master_key = EncryptionService.wrap(
                master_key,
                kek,
                master_key_nonce,
                record.cipher_algorithm,
                key_uuid.encode("ascii"),
            )
        finally:
            primitives.zeroize(kek)
            primitives.zeroize(master_key)

        self.store.replace_master_key_wrap(key_uuid, kdf_salt, wrapped_master_key, master_key_nonce)
        self.audit.log_key_event(EventType.KEY_PASSPHRASE_CHANGED, key_uuid, "passphrase changed")

    def export_key(self, key_uuid: str, passphrase: Passphrase) -> Dict[str, str]:
        """
        Values for an external key viewer (copy-to-clipboard only).

        Returns:
            dict with display labels, hex content_salt and hex content key.
            Nothing is written to disk.
        """
        record = self._load(key_uuid)
        content_key = self._resolve(record, passphrase)
        try:
            exported = {
                "uuid": record.uuid,
                "cipher_algorithm": record.cipher_algorithm.display_name,
                "hashing_profile": record.hashing_profile.display_name,
                "content_salt": bytes(record.content_salt).hex(),
                "content_key": content_key.hex(),
            }
        finally:
            primitives.zeroize(content_key)

        self.audit.log_key_event(
            EventType.KEY_EXPORTED,
            key_uuid,
            "key values exported for display",
            severity=EventSeverity.INVESTIGATE,
        )
        return exported

    # ── Content operations ───────────────────────────────────────────

    def encrypt_content(
        self,
        key_uuid: str,
        passphrase: Passphrase,
        plaintext: bytes,
        aad: bytes = b"",
    ) -> bytes:
        """
        Encrypt content under a key's content key.

        Returns:
            seed(16) + ciphertext + tag
        """
        record = self._load(key_uuid)
        seed = primitives.new_seed()
        nonce = EncryptionService.derive_content_nonce(
            seed, record.content_salt, record.cipher_algorithm
        )
        content_key = self._resolve(record, passphrase)
        try:
            ciphertext = EncryptionService.wrap(
                plaintext,
                content_key,
                nonce,
                record.cipher_algorithm,
                record.uuid.encode("ascii") + aad,
            )
        finally:
            primitives.zeroize(content_key)

        self.audit.log_key_event(
            EventType.CONTENT_ENCRYPTED, key_uuid, "content encrypted",
            details={"size_bytes": len(plaintext)},
        )
        return seed + ciphertext

    def decrypt_content(
        self,
        key_uuid: str,
        passphrase: Passphrase,
        blob: bytes,
        aad: bytes = b"",
    ) -> bytes:
        """
        Decrypt a blob produced by encrypt_content.

        Raises:
            WrongPassphrase: The passphrase does not unlock the key
            AuthenticationFailed: Blob tampered, truncated or from another key
        """
        record = self._load(key_uuid)
        content_key = self._resolve(record, passphrase)
        try:
            if len(blob) < primitives.SEED_LENGTH + primitives.TAG_LENGTH:
                raise AuthenticationFailed("Encrypted content too short")
            seed = blob[:primitives.SEED_LENGTH]
            nonce = EncryptionService.derive_content_nonce(
                seed, record.content_salt, record.cipher_algorithm
            )
            plaintext = EncryptionService.unwrap(
                blob[primitives.SEED_LENGTH:],
                content_key,
                nonce,
                record.cipher_algorithm,
                record.uuid.encode("ascii") + aad,
            )
        finally:
            primitives.zeroize(content_key)

        self.audit.log_key_event(EventType.CONTENT_DECRYPTED, key_uuid, "content decrypted")
        return plaintext

    # ── Keystore backup ──────────────────────────────────────────────

    def backup_keystore(self, path: Union[str, Path]) -> int:
        """
        Write every key record, in wrapped form only, to a JSON file.

        Returns:
            Number of records written
        """
        records = self.store.list()
        payload = {
            "version": BACKUP_FORMAT_VERSION,
            "keys": [self._record_to_backup(r) for r in records],
        }
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

        self.audit.log_event(
            event_type=EventType.KEYSTORE_BACKED_UP,
            severity=EventSeverity.INFO,
            message=f"Key vault: {len(records)} keys backed up",
            details={"path": str(path), "count": len(records)},
        )
        return len(records)

    def restore_keystore(self, path: Union[str, Path]) -> int:
        """
        Import key records from a backup file.

        Keys whose uuid already exists are skipped; imported keys are never
        made default. Every entry is validated before anything is written.

        Returns:
            Number of records imported

        Raises:
            CorruptRecord: Malformed backup or entry
            UnsupportedAlgorithm: Entry uses an unknown cipher/hashing label
        """
        path = Path(path)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            entries = payload["keys"]
            version = payload["version"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise CorruptRecord(str(path), f"unreadable backup: {e}") from None
        if version != BACKUP_FORMAT_VERSION:
            raise CorruptRecord(str(path), f"unknown backup version {version!r}")
        if not isinstance(entries, list):
            raise CorruptRecord(str(path), "backup 'keys' is not a list")

        records = [self._record_from_backup(entry) for entry in entries]

        imported = len(self.store.insert_missing(records))
        if imported < len(records):
            logger.info("Skipped %d keys already in vault", len(records) - imported)

        self.audit.log_event(
            event_type=EventType.KEYSTORE_RESTORED,
            severity=EventSeverity.INFO,
            message=f"Key vault: {imported} keys restored",
            details={"path": str(path), "imported": imported, "in_backup": len(records)},
        )
        return imported

    @staticmethod
    def _record_to_backup(record: KeyRecord) -> Dict[str, Any]:
        entry = {
            "uuid": record.uuid,
            "name": record.name,
            "date_created": record.date_created,
            "cipher_algorithm": record.cipher_algorithm.value,
            "hashing_profile": record.hashing_profile.value,
            "automount": record.automount,
        }
        for field_name in _BINARY_FIELDS:
            entry[field_name] = base64.b64encode(getattr(record, field_name)).decode("ascii")
        return entry

    @staticmethod
    def _record_from_backup(entry: Dict[str, Any]) -> KeyRecord:
        key_uuid = str(entry.get("uuid", "<missing uuid>")) if isinstance(entry, dict) else "<invalid entry>"
        try:
            uuid.UUID(entry["uuid"])
            name = _optional_str(entry, "name")
            date_created = _optional_str(entry, "date_created")
            automount = entry.get("automount", False)
            if not isinstance(automount, bool):
                raise ValueError(f"automount must be true or false, got {automount!r}")
            binary = {
                field_name: base64.b64decode(entry[field_name], validate=True)
                for field_name in _BINARY_FIELDS
            }
            record = KeyRecord(
                uuid=entry["uuid"],
                name=name,
                date_created=date_created,
                cipher_algorithm=CipherAlgorithm.from_label(entry["cipher_algorithm"]),
                hashing_profile=HashingProfile.from_label(entry["hashing_profile"]),
                automount=automount,
                is_default=False,
                **binary,
            )
        except UnsupportedAlgorithm:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CorruptRecord(key_uuid, f"invalid backup entry: {e}") from None
        record.validate_shape()
        return record


def _optional_str(entry: Dict[str, Any], field_name: str) -> Optional[str]:
    value = entry.get(field_name)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string, got {type(value).__name__}")
    return value
