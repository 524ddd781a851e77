"""Telemetry and unhandled-error sinks.

A client reports request durations and classified failures to an
observer. The default observer writes them to the library logger.
"""

import logging
from typing import Any, Dict, Protocol, runtime_checkable

from .exceptions import HttpLifecycleError
from .utils.security import sanitize_url

logger = logging.getLogger(__name__)


@runtime_checkable
class Observer(Protocol):
    """Receiver for request timing and unhandled errors."""

    def on_duration(self, descriptor: Dict[str, Any], duration_ms: float) -> None:
        ...

    def on_unhandled_error(self, error: HttpLifecycleError) -> None:
        ...


class LoggingObserver:
    """Observer that logs through the standard ``logging`` module.

    :param duration_level: Level used for request durations
    :param error_level: Level used for unhandled errors
    """

    def __init__(self, duration_level: int = logging.INFO, error_level: int = logging.ERROR):
        self.duration_level = duration_level
        self.error_level = error_level

    def on_duration(self, descriptor: Dict[str, Any], duration_ms: float) -> None:
        logger.log(
            self.duration_level,
            f"Request duration: {duration_ms:.1f}ms "
            f"({descriptor.get('method')} {sanitize_url(str(descriptor.get('url', '')))})",
        )

    def on_unhandled_error(self, error: HttpLifecycleError) -> None:
        logger.log(self.error_level, f"Unhandled error occurred: {error.to_json()}")


class NullObserver:
    """Observer that ignores everything."""

    def on_duration(self, descriptor: Dict[str, Any], duration_ms: float) -> None:
        pass

    def on_unhandled_error(self, error: HttpLifecycleError) -> None:
        pass
