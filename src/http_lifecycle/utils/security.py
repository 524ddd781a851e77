"""Redaction helpers and secure logging setup.

Bearer tokens and refresh tokens pass through this library on every
request. The helpers here keep them out of log lines:

- ``sanitize_string`` redacts token-shaped substrings
- ``sanitize_headers`` / ``sanitize_url`` / ``safe_log_dict`` redact by name
- ``SanitizingFormatter`` applies ``sanitize_string`` to every record
"""

import copy
import logging
import re
import sys
from typing import Any, Dict, Iterable, Optional

# Patterns for sensitive data detection
SENSITIVE_PATTERNS = {
    "jwt_token": re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
    "bearer_token": re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE),
    "basic_auth": re.compile(r"Basic\s+[A-Za-z0-9+/=]+", re.IGNORECASE),
    "api_key": re.compile(r"\b[A-Za-z0-9]{32,}\b"),
}

# Headers that should never be logged
SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
    "x-api-key",
    "x-auth-token",
    "cookie",
    "set-cookie",
    "x-access-token",
    "x-refresh-token",
}

# Substrings of dictionary keys whose values are always redacted
SENSITIVE_KEYS = {"password", "token", "secret", "key", "auth"}

# Query parameters that may carry credentials
SENSITIVE_PARAMS = (
    "access_token",
    "refresh_token",
    "refreshToken",
    "api_key",
    "client_secret",
    "token",
    "secret",
    "password",
    "key",
)


def sanitize_string(value: str) -> str:
    """Redact token-shaped substrings.

    :param value: String to sanitize
    :type value: str
    :return: The string with every sensitive match replaced
    :rtype: str
    """
    if not value:
        return value
    for pattern_name, pattern in SENSITIVE_PATTERNS.items():
        value = pattern.sub(f"<{pattern_name}:REDACTED>", value)
    return value


def sanitize_headers(headers: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Sanitize HTTP headers for logging.

    :param headers: Dictionary of HTTP headers
    :type headers: Optional[Dict[str, Any]]
    :return: A sanitized copy; the input is not modified
    :rtype: Optional[Dict[str, Any]]
    """
    if not headers:
        return headers
    sanitized = dict(headers)
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            if isinstance(value, str) and value:
                sanitized[key] = f"<REDACTED:length={len(value)}>"
            else:
                sanitized[key] = "<REDACTED>"
        elif isinstance(value, str):
            sanitized[key] = sanitize_string(value)
    return sanitized


def sanitize_url(url: str) -> str:
    """Redact credential-bearing query parameters from a URL.

    :param url: URL to sanitize
    :type url: str
    :return: URL with sensitive parameter values redacted
    :rtype: str
    """
    if not url:
        return url
    for param in SENSITIVE_PARAMS:
        url = re.sub(
            rf"([?&]{param}=)[^&#\s]+", r"\1<REDACTED>", url, flags=re.IGNORECASE
        )
    return url


def safe_log_dict(
    data: Dict[str, Any], sanitize_keys: Optional[Iterable[str]] = None
) -> Dict[str, Any]:
    """Create a safe copy of a dictionary for logging.

    Values whose key contains a sensitive word are replaced; string values
    elsewhere go through :func:`sanitize_string`. Nested dicts and lists
    are handled recursively.

    :param data: Dictionary to sanitize
    :param sanitize_keys: Additional key substrings to redact
    :return: Sanitized dictionary
    """
    if not data:
        return data
    keys = set(SENSITIVE_KEYS)
    if sanitize_keys:
        keys.update(k.lower() for k in sanitize_keys)

    def _sanitize(obj: Any) -> Any:
        if isinstance(obj, dict):
            result = {}
            for key, value in obj.items():
                if any(word in str(key).lower() for word in keys):
                    result[key] = "<REDACTED>"
                else:
                    result[key] = _sanitize(value)
            return result
        if isinstance(obj, list):
            return [_sanitize(item) for item in obj]
        if isinstance(obj, str):
            return sanitize_string(obj)
        return obj

    return _sanitize(copy.deepcopy(data))


class SanitizingFormatter(logging.Formatter):
    """Formatter that redacts sensitive data from every record."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the record after sanitizing its message.

        :param record: Log record to format
        :type record: logging.LogRecord
        :return: Sanitized log line
        :rtype: str
        """
        # Work on a copy so other handlers see the record untouched
        record = logging.makeLogRecord(record.__dict__)
        record.msg = sanitize_string(record.getMessage())
        record.args = None
        return super().format(record)


_LOGGING_CONFIGURED = False

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_secure_logging(level: str = "INFO", stream=None) -> logging.Handler:
    """Attach a sanitizing handler to the library's loggers.

    Only the ``http_lifecycle`` and ``httpx`` loggers are configured; the
    root logger is left to the application. Calling this again updates
    the level without adding a second handler.

    :param level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    :type level: str
    :param stream: Output stream, defaults to ``sys.stdout``
    :return: The installed handler
    :rtype: logging.Handler
    """
    global _LOGGING_CONFIGURED

    numeric_level = getattr(logging, level.upper())
    package_logger = logging.getLogger("http_lifecycle")

    if _LOGGING_CONFIGURED:
        package_logger.setLevel(numeric_level)
        for handler in package_logger.handlers:
            if isinstance(handler.formatter, SanitizingFormatter):
                package_logger.debug("Logging already configured, updated level only")
                return handler

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(SanitizingFormatter(LOG_FORMAT))

    for logger_name in ("http_lifecycle", "httpx"):
        target = logging.getLogger(logger_name)
        target.handlers = [
            h for h in target.handlers if not isinstance(h.formatter, SanitizingFormatter)
        ]
        target.addHandler(handler)
        target.setLevel(numeric_level)
        target.propagate = False

    _LOGGING_CONFIGURED = True
    return handler


def log_request(
    method: str, url: str, headers: Optional[Dict[str, Any]], body: Any, logger
) -> None:
    """Log request details at debug level with redaction.

    :param method: HTTP method
    :param url: Request URL
    :param headers: Request headers
    :param body: Request body
    :param logger: Logger instance to use
    """
    if not logger.isEnabledFor(logging.DEBUG):
        return
    safe_body = safe_log_dict(body) if isinstance(body, dict) else body
    if isinstance(safe_body, str) and len(safe_body) > 100:
        safe_body = safe_body[:100] + "..."
    logger.debug(f"Request: {method} {sanitize_url(url)}")
    logger.debug(f"Headers: {sanitize_headers(headers)}")
    if body is not None:
        logger.debug(f"Body: {safe_body}")
