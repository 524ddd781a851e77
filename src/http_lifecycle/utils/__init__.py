"""Utility helpers for http-lifecycle."""

from .security import (
    SanitizingFormatter,
    log_request,
    safe_log_dict,
    sanitize_headers,
    sanitize_string,
    sanitize_url,
    setup_secure_logging,
)

__all__ = [
    "SanitizingFormatter",
    "log_request",
    "safe_log_dict",
    "sanitize_headers",
    "sanitize_string",
    "sanitize_url",
    "setup_secure_logging",
]
