"""Request and response interceptor chains.

Request interceptors receive the :class:`RequestSpec` before dispatch and
may mutate it in place or return a replacement. Response interceptors run
after the exchange, on success and on failure, and receive
``(request, response, error)``.

Interceptors may be plain callables or coroutine functions. The
built-in interceptors are installed by the client in a fixed order:
timing, then cancellation, then authorization.
"""

import inspect
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Union

from ..auth.token_manager import TokenManager
from ..exceptions import HttpLifecycleError, InterceptorError, SetupError
from ..models.request import RequestSpec, TransportResponse
from ..observers import Observer
from ..registry.pending import CancellationHandle, PendingRequestRegistry

logger = logging.getLogger(__name__)

RequestInterceptor = Callable[
    [RequestSpec], Union[Optional[RequestSpec], Awaitable[Optional[RequestSpec]]]
]
ResponseInterceptor = Callable[
    [RequestSpec, Optional[TransportResponse], Optional[BaseException]],
    Union[None, Awaitable[None]],
]


def _name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or type(fn).__name__


class InterceptorPipeline:
    """Ordered request and response interceptors."""

    def __init__(self):
        self._request: List[RequestInterceptor] = []
        self._response: List[ResponseInterceptor] = []

    def add_request(self, interceptor: RequestInterceptor) -> RequestInterceptor:
        """Append a request interceptor. Usable as a decorator."""
        self._request.append(interceptor)
        return interceptor

    def add_response(self, interceptor: ResponseInterceptor) -> ResponseInterceptor:
        """Append a response interceptor. Usable as a decorator."""
        self._response.append(interceptor)
        return interceptor

    def remove_request(self, interceptor: RequestInterceptor) -> None:
        self._request.remove(interceptor)

    def remove_response(self, interceptor: ResponseInterceptor) -> None:
        self._response.remove(interceptor)

    def use(self, interceptor: Any) -> None:
        """Install an object exposing ``on_request`` and/or ``on_response``."""
        if hasattr(interceptor, "on_request"):
            self.add_request(interceptor.on_request)
        if hasattr(interceptor, "on_response"):
            self.add_response(interceptor.on_response)

    @property
    def request_interceptors(self) -> List[RequestInterceptor]:
        return list(self._request)

    @property
    def response_interceptors(self) -> List[ResponseInterceptor]:
        return list(self._response)

    async def run_request(self, request: RequestSpec) -> RequestSpec:
        """Run request interceptors in order.

        :param request: The request record
        :return: The (possibly replaced) request record
        :raises SetupError: If an interceptor raises a non-library exception
        """
        for interceptor in self._request:
            try:
                result = interceptor(request)
                if inspect.isawaitable(result):
                    result = await result
            except HttpLifecycleError:
                raise
            except Exception as e:
                logger.error(f"Request interceptor {_name(interceptor)} failed: {e}")
                raise SetupError(
                    f"Request interceptor {_name(interceptor)} failed: {e}",
                    request=request.descriptor(),
                ) from e
            if isinstance(result, RequestSpec):
                request = result
        return request

    async def run_response(
        self,
        request: RequestSpec,
        response: Optional[TransportResponse],
        error: Optional[BaseException],
    ) -> None:
        """Run response interceptors in order.

        :raises InterceptorError: If an interceptor raises a non-library exception
        """
        for interceptor in self._response:
            try:
                result = interceptor(request, response, error)
                if inspect.isawaitable(result):
                    await result
            except HttpLifecycleError:
                raise
            except Exception as e:
                logger.error(f"Response interceptor {_name(interceptor)} failed: {e}")
                raise InterceptorError(
                    f"Response interceptor {_name(interceptor)} failed: {e}",
                    request=request.descriptor(),
                ) from e


class TimingInterceptor:
    """Stamp the issue time and report the duration to the observer.

    :param observer: Receiver of ``on_duration``
    :param clock: Monotonic clock in seconds
    """

    def __init__(self, observer: Observer, clock: Optional[Callable[[], float]] = None):
        self._observer = observer
        self._clock = clock or time.perf_counter

    def on_request(self, request: RequestSpec) -> None:
        request.issued_at = self._clock()

    def on_response(
        self,
        request: RequestSpec,
        response: Optional[TransportResponse],
        error: Optional[BaseException],
    ) -> None:
        if request.issued_at is None:
            return
        duration_ms = (self._clock() - request.issued_at) * 1000
        request.metadata["duration_ms"] = duration_ms
        self._observer.on_duration(request.descriptor(), duration_ms)


class CancellationInterceptor:
    """Attach a cancellation handle and register it for the request identity.

    Registration is synchronous, so a superseded duplicate is canceled
    before the new request can reach the transport. The record is
    released by the client once the request settles, whatever the
    response interceptors do.
    """

    def __init__(self, registry: PendingRequestRegistry):
        self._registry = registry

    def on_request(self, request: RequestSpec) -> None:
        handle = CancellationHandle(request.identity)
        request.handle = handle
        if request.identity is not None:
            self._registry.register(
                request.identity,
                handle,
                cancel_previous=request.should_cancel_previous(),
            )


class AuthInterceptor:
    """Set the ``Authorization`` header from the token manager."""

    def __init__(self, token_manager: TokenManager):
        self._token_manager = token_manager

    async def on_request(self, request: RequestSpec) -> None:
        request.headers.update(await self._token_manager.authorization_header())
