"""Configuration for http-lifecycle clients."""

from .settings import ClientSettings, OPTION_ALIASES, normalize_options, resolve_config

__all__ = [
    "ClientSettings",
    "OPTION_ALIASES",
    "normalize_options",
    "resolve_config",
]
