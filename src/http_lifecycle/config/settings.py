"""Configuration settings for the http-lifecycle client.

This module defines the immutable configuration record every client owns.
Defaults can be supplied through environment variables (prefix
``HTTP_LIFECYCLE_``) or a ``.env`` file; options passed in code always
win over both.

All durations are expressed in seconds.
"""

from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError

# camelCase option names accepted alongside the snake_case field names
OPTION_ALIASES: Dict[str, str] = {
    "baseAddress": "base_address",
    "baseURL": "base_address",
    "retryEnabled": "retry_enabled",
    "retry": "retry_enabled",
    "retryDelay": "retry_delay",
    "cacheEnabled": "cache_enabled",
    "cacheTTL": "cache_ttl",
    "cacheSweepInterval": "cache_sweep_interval",
    "cacheCheckPeriod": "cache_sweep_interval",
    "errorHandlingEnabled": "error_handling_enabled",
    "globalErrorHandling": "error_handling_enabled",
    "performanceMonitoringEnabled": "performance_monitoring_enabled",
    "performanceMonitoring": "performance_monitoring_enabled",
    "cancellationEnabled": "cancellation_enabled",
    "requestCancellation": "cancellation_enabled",
    "refreshEndpoint": "refresh_endpoint",
    "refreshTokenURL": "refresh_endpoint",
    "refreshToken": "refresh_token",
    "tokenRefreshEnabled": "token_refresh_enabled",
    "tokenRefreshThreshold": "token_refresh_threshold",
    "logLevel": "log_level",
}


class ClientSettings(BaseSettings):
    """Immutable client configuration.

    :param base_address: Base URL prepended to relative request URLs
    :type base_address: str
    :param headers: Default headers sent with every request
    :type headers: Dict[str, str]
    :param timeout: Per-request timeout in seconds
    :type timeout: float
    :param retry_enabled: Pause ``retry_delay`` before the post-refresh re-issue
    :type retry_enabled: bool
    :param retry_delay: Pause in seconds before the post-refresh re-issue
    :type retry_delay: float
    :param cache_enabled: Cache GET responses
    :type cache_enabled: bool
    :param cache_ttl: Lifetime of a cached response in seconds
    :type cache_ttl: float
    :param cache_sweep_interval: Minimum seconds between expired-entry sweeps
    :type cache_sweep_interval: float
    :param error_handling_enabled: Report failures to the observer
    :type error_handling_enabled: bool
    :param performance_monitoring_enabled: Report request durations to the observer
    :type performance_monitoring_enabled: bool
    :param cancellation_enabled: Cancel superseded duplicate requests
    :type cancellation_enabled: bool
    :param refresh_endpoint: Absolute URL of the credential-refresh endpoint
    :type refresh_endpoint: str
    :param refresh_token: Refresh token used for the refresh exchange; when
        unset, the one in the token store is used
    :type refresh_token: Optional[str]
    :param token_refresh_enabled: Attach bearer tokens and recover from 401
    :type token_refresh_enabled: bool
    :param token_refresh_threshold: Seconds before expiry a token counts as expiring
    :type token_refresh_threshold: float
    :param log_level: Level used by :func:`setup_secure_logging`
    :type log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    """

    model_config = SettingsConfigDict(
        env_prefix="HTTP_LIFECYCLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    base_address: str = Field(
        "https://api.example.com", description="Base URL for relative requests"
    )
    headers: Dict[str, str] = Field(
        default_factory=lambda: {"X-Custom-Header": "foobar"},
        description="Default request headers",
    )
    timeout: float = Field(10.0, ge=0, description="Request timeout in seconds")

    retry_enabled: bool = Field(
        False, description="Delay the post-refresh re-issue by retry_delay"
    )
    retry_delay: float = Field(1.0, ge=0, description="Retry delay in seconds")

    cache_enabled: bool = Field(True, description="Cache GET responses")
    cache_ttl: float = Field(100.0, ge=0, description="Cache TTL in seconds")
    cache_sweep_interval: float = Field(
        120.0, ge=0, description="Seconds between expired-entry sweeps"
    )

    error_handling_enabled: bool = Field(
        True, description="Report failures to the observer"
    )
    performance_monitoring_enabled: bool = Field(
        True, description="Report request durations to the observer"
    )
    cancellation_enabled: bool = Field(
        True, description="Cancel superseded duplicate requests"
    )

    refresh_endpoint: str = Field(
        "https://api.example.com/refresh-token",
        description="Credential refresh endpoint",
    )
    refresh_token: Optional[str] = Field(
        None,
        description="Refresh token for the refresh exchange; the token store is used when unset",
    )
    token_refresh_enabled: bool = Field(
        True, description="Attach bearer tokens and refresh on 401"
    )
    token_refresh_threshold: float = Field(
        300.0, ge=0, description="Seconds before expiry to treat a token as expiring"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Logging level"
    )

    def merged(self, overrides: Optional[Mapping[str, Any]] = None, **kwargs) -> "ClientSettings":
        """Return a new settings record with overrides applied on top of this one.

        :param overrides: Options to apply
        :return: New immutable settings
        :rtype: ClientSettings
        """
        base = self.model_dump()
        if overrides:
            base.update(normalize_options(overrides))
        if kwargs:
            base.update(normalize_options(kwargs))
        return resolve_config(base)


def normalize_options(options: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate camelCase option names to field names.

    :param options: Raw option mapping
    :return: Mapping keyed by field name
    :raises ConfigurationError: If an option is not recognized
    """
    normalized: Dict[str, Any] = {}
    for key, value in options.items():
        name = OPTION_ALIASES.get(key, key)
        if name not in ClientSettings.model_fields:
            raise ConfigurationError(f"Unknown configuration option: {key}", setting=key)
        normalized[name] = value
    return normalized


def resolve_config(
    overrides: Optional[Mapping[str, Any]] = None, **kwargs: Any
) -> ClientSettings:
    """Merge overrides over the documented defaults.

    The merge is shallow and last-write-wins: keyword arguments override
    entries of ``overrides``, and both override environment defaults. Only
    non-negativity of the duration options is validated.

    :param overrides: Option mapping (snake_case or camelCase keys)
    :param kwargs: Additional options
    :return: Immutable settings record
    :rtype: ClientSettings
    :raises ConfigurationError: On unknown options or invalid values
    """
    merged: Dict[str, Any] = {}
    if overrides:
        merged.update(normalize_options(overrides))
    if kwargs:
        merged.update(normalize_options(kwargs))

    try:
        return ClientSettings(**merged)
    except ValidationError as e:
        first = e.errors()[0]
        setting = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigurationError(
            f"Invalid value for '{setting}': {first.get('msg')}", setting=setting
        ) from e
