"""Logging for authn-flow.

System logger (stderr + optional system.jsonl) and redaction helpers.
"""

from authn_flow.telemetry.redaction import (
    REDACTED,
    hash_sensitive_id,
    redact_params,
    sanitize_for_logging,
)
from authn_flow.telemetry.system_logger import (
    configure_system_logger_file,
    get_system_logger,
    set_console_level,
)

__all__ = [
    "REDACTED",
    "configure_system_logger_file",
    "get_system_logger",
    "hash_sensitive_id",
    "redact_params",
    "sanitize_for_logging",
    "set_console_level",
]
