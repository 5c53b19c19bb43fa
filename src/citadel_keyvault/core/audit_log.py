# Key Vault - Audit Logging
#
# Append-only audit trail for every key administration and key resolution
# event. Events carry key uuids, algorithm labels and outcomes only; fields
# that could hold secret material are redacted before rendering.

import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

# Field names that must never reach a log sink with their value intact.
SECRET_FIELDS = frozenset({
    "passphrase",
    "password",
    "old_passphrase",
    "new_passphrase",
    "content_key",
    "master_key",
    "kek",
    "key_bytes",
    "plaintext",
})
REDACTED = "[REDACTED]"


class EventType(str, Enum):
    """Types of key vault events that can be logged."""
    # Key administration
    KEY_ADDED = "key.added"
    KEY_REMOVED = "key.removed"
    KEY_RENAMED = "key.renamed"
    KEY_DEFAULT_CHANGED = "key.default.changed"
    KEY_AUTOMOUNT_CHANGED = "key.automount.changed"
    KEY_PASSPHRASE_CHANGED = "key.passphrase.changed"

    # Key use
    KEY_RESOLVED = "key.resolved"
    KEY_RESOLVE_FAILED = "key.resolve.failed"
    KEY_EXPORTED = "key.exported"
    CONTENT_ENCRYPTED = "content.encrypted"
    CONTENT_DECRYPTED = "content.decrypted"

    # Keystore
    KEYSTORE_BACKED_UP = "keystore.backed_up"
    KEYSTORE_RESTORED = "keystore.restored"

    VAULT_ERROR = "vault.error"
    SYSTEM_START = "system.start"


class EventSeverity(str, Enum):
    """
    Severity levels for key vault events.

    - INFO: Normal activity (logged only)
    - INVESTIGATE: Something unusual, e.g. a failed passphrase
    - ALERT: Data integrity problem (corrupt record, failed restore)
    - CRITICAL: Unexpected failure inside the vault
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


def redact_secrets(logger, method_name, event_dict):
    """structlog processor: blank out secret-looking fields at any depth."""
    return _redact(event_dict)


def _redact(value):
    if isinstance(value, dict):
        return {
            k: (REDACTED if k in SECRET_FIELDS else _redact(v))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v) for v in value)
    return value


class AuditLogger:
    """
    Append-only audit logger for key vault events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - OS user / host context capture
    - Secret field redaction on every event
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: configured audit dir)
        """
        if log_dir is None:
            from .config import get_config
            log_dir = get_config().audit_dir
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        # Setup structured logging
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                redact_secrets,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._setup_file_handler()

        self.logger = structlog.get_logger("citadel_keyvault.audit")

    def _setup_file_handler(self):
        """Attach a daily log file to the audit logger."""
        today = datetime.now().strftime("%Y-%m-%d")
        self.log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog handles formatting

        audit_logger = logging.getLogger("citadel_keyvault.audit")
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        self._file_handler = file_handler

    def close(self):
        """Detach and close the file handler."""
        logging.getLogger("citadel_keyvault.audit").removeHandler(self._file_handler)
        self._file_handler.close()

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log a key vault event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (key uuid, labels; never secrets)
            user_context: User context (defaults to OS user and hostname)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {},
            "user_context": user_context or self._get_default_user_context(),
        }

        self.logger.info("vault_event", **event_data)

        return event_id

    def log_key_event(
        self,
        event_type: EventType,
        key_uuid: str,
        message: str,
        severity: EventSeverity = EventSeverity.INFO,
        details: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log an event about a single key record.

        Args:
            event_type: Type of key event
            key_uuid: External uuid of the key record
            message: Event description
            severity: Event severity
            details: Additional details (never include key material!)

        Returns:
            str: Event ID
        """
        event_details = dict(details or {})
        event_details["key_uuid"] = key_uuid

        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"Key vault: {message}",
            details=event_details
        )

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, etc.)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def log_security_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """
    Convenience function for logging key vault events.

    Usage:
        log_security_event(
            EventType.VAULT_ERROR,
            EventSeverity.CRITICAL,
            "Key store unavailable",
            details={"db_path": "data/keyvault.db"}
        )
    """
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
