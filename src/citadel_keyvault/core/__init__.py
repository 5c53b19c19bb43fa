# Core Module - Shared Utilities
#
# Core module provides shared functionality for the key vault:
# - Audit logging
# - Configuration
# - SQLite connection helper

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    log_security_event,
)

__all__ = [
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "log_security_event",
]
