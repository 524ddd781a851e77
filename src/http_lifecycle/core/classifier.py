"""Error classification, reporting and the one-shot 401 recovery.

``ErrorClassifier`` turns the outcome of one exchange into either nothing
(success) or exactly one library error. ``RetryController`` handles the
only locally recovered case: a 401 answered by refreshing the token and
re-issuing the original request once.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..auth.token_manager import TokenManager
from ..exceptions import (
    CanceledError,
    HttpLifecycleError,
    NotFoundError,
    ResponseError,
    SetupError,
    TokenRefreshError,
    TransportError,
    UnauthorizedError,
)
from ..models.request import RequestSpec, TransportResponse
from ..observers import Observer
from ..registry.pending import DEFAULT_CANCEL_REASON
from ..transport.base import TransportFailure
from ..utils.security import sanitize_url

logger = logging.getLogger(__name__)


class ErrorClassifier:
    """Map exchange outcomes onto the error taxonomy.

    :param token_refresh_enabled: Whether a 401 may be recovered
    :param observer: Receiver of unhandled errors
    :param error_handling_enabled: Report failures to the observer
    """

    def __init__(
        self,
        token_refresh_enabled: bool = True,
        observer: Optional[Observer] = None,
        error_handling_enabled: bool = True,
    ):
        self.token_refresh_enabled = token_refresh_enabled
        self.observer = observer
        self.error_handling_enabled = error_handling_enabled

    def classify(
        self,
        request: RequestSpec,
        response: Optional[TransportResponse] = None,
        error: Optional[BaseException] = None,
    ) -> Optional[HttpLifecycleError]:
        """Classify the outcome of one exchange.

        :param request: The request that was sent (or was about to be)
        :param response: The transport response, if one was received
        :param error: The exception raised instead of a response, if any
        :return: None on success, otherwise the classified error
        """
        descriptor = request.descriptor()

        if isinstance(error, CanceledError):
            return error
        if request.handle is not None and request.handle.cancelled:
            return CanceledError(
                request.handle.reason or DEFAULT_CANCEL_REASON, request=descriptor
            )
        if isinstance(error, HttpLifecycleError):
            return error
        if isinstance(error, TransportFailure):
            return TransportError(
                f"No response received for {request.method} "
                f"{sanitize_url(request.url)}: {error}",
                request=descriptor,
            )
        if error is not None:
            return SetupError(f"Request could not be sent: {error}", request=descriptor)

        if response is None or response.ok:
            return None

        if response.status == 401:
            return UnauthorizedError(
                f"Unauthorized: {request.method} {sanitize_url(request.url)}",
                body=response.data,
                request=descriptor,
            )
        if response.status == 404:
            return NotFoundError(
                f"Resource not found: {sanitize_url(request.url)}",
                body=response.data,
                request=descriptor,
            )
        return ResponseError(
            f"Request failed with status {response.status}",
            status=response.status,
            body=response.data,
            request=descriptor,
        )

    def is_recoverable(self, error: HttpLifecycleError, request: RequestSpec) -> bool:
        """Return whether ``error`` qualifies for refresh-and-retry."""
        return (
            isinstance(error, UnauthorizedError)
            and self.token_refresh_enabled
            and not request.is_retry
        )

    def report(self, error: HttpLifecycleError) -> None:
        """Log a final failure and hand it to the observer.

        Cancellations are expected and only logged at debug level.
        """
        if isinstance(error, CanceledError):
            logger.debug(f"Request canceled: {error.message}")
            return

        if isinstance(error, NotFoundError):
            logger.error(error.message)
        elif isinstance(error, ResponseError):
            logger.error(f"Error status: {error.status}")
            logger.error(f"Error data: {error.body}")
        elif isinstance(error, TransportError):
            logger.error(f"Error request: {error.message}")
        elif isinstance(error, TokenRefreshError):
            logger.error(f"Failed to refresh token: {error.message}")
        else:
            logger.error(f"Error message: {error.message}")

        if self.error_handling_enabled and self.observer is not None:
            try:
                self.observer.on_unhandled_error(error)
            except Exception:
                # The classified error is still returned to the caller
                logger.exception(f"Observer failed to handle {error.code}")


class RetryController:
    """Refresh the token and re-issue a request that got a 401.

    :param token_manager: Manager whose refresh is coalesced
    :param retry_enabled: Pause ``retry_delay`` before re-issuing
    :param retry_delay: Pause in seconds
    :param sleep: Coroutine used for the pause
    """

    def __init__(
        self,
        token_manager: TokenManager,
        retry_enabled: bool = False,
        retry_delay: float = 0.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self._token_manager = token_manager
        self._retry_enabled = retry_enabled
        self._retry_delay = retry_delay
        self._sleep = sleep or asyncio.sleep

    def _token_changed_since(self, request: RequestSpec) -> bool:
        """Return whether a concurrent refresh already replaced the sent token."""
        sent = request.headers.get("Authorization")
        state = self._token_manager.state
        if not sent or state is None or self._token_manager.is_expired():
            return False
        return sent != f"{state.token_type} {state.token}"

    async def recover(
        self,
        request: RequestSpec,
        error: UnauthorizedError,
        reissue: Callable[[RequestSpec], Awaitable[Any]],
    ) -> Any:
        """Refresh the token and re-issue ``request`` exactly once.

        :param request: The request that got the 401
        :param error: The classified 401
        :param reissue: Coroutine function that executes a request
        :return: The payload of the re-issued request
        :raises TokenRefreshError: If the refresh exchange fails
        :raises CanceledError: If the original request was canceled meanwhile
        """
        logger.warning(f"Unauthorized, attempting to refresh token: {error.message}")

        if self._token_changed_since(request):
            logger.debug("Token was already refreshed by a concurrent request")
        else:
            await self._token_manager.refresh()

        if self._retry_enabled and self._retry_delay > 0:
            await self._sleep(self._retry_delay)

        if request.handle is not None:
            request.handle.raise_if_cancelled(request.descriptor())

        retry = request.retry_copy()
        logger.debug(f"Retrying {retry.method} {sanitize_url(retry.url)} with refreshed token")
        return await reissue(retry)
