"""The request-lifecycle client.

``HttpLifecycleClient`` puts caching, duplicate cancellation, bearer-token
handling, timing and error classification in front of an injected
transport. Every call follows the same path:

1. Request interceptors: timing stamp, cancellation handle and registry
   entry, ``Authorization`` header, then any user interceptors
2. Cache lookup for GET requests (a hit short-circuits)
3. Transport dispatch, raced against the cancellation handle
4. Response interceptors (duration report), then release of the registry
   record whatever the interceptors do
5. Classification: payload on success, otherwise one library error; a
   401 is recovered once by refreshing the token and re-issuing
"""

import logging
import re
import time
from typing import Any, Callable, Dict, Mapping, Optional

from ..auth.token_manager import TokenManager
from ..auth.token_store import TokenStore
from ..cache.response_cache import ResponseCache
from ..config.settings import ClientSettings, resolve_config
from ..exceptions import HttpLifecycleError, SetupError, UnauthorizedError
from ..models.request import (
    SUPPORTED_METHODS,
    ExchangeResult,
    RequestIdentity,
    RequestSpec,
    TransportResponse,
)
from ..observers import LoggingObserver, Observer
from ..registry.pending import DEFAULT_CANCEL_REASON, PendingRequestRegistry
from ..transport.base import HttpTransport, TransportFailure
from ..transport.httpx_transport import HttpxTransport
from ..utils.security import log_request, sanitize_url, setup_secure_logging
from .classifier import ErrorClassifier, RetryController
from .pipeline import (
    AuthInterceptor,
    CancellationInterceptor,
    InterceptorPipeline,
    TimingInterceptor,
)

logger = logging.getLogger(__name__)

# Keys accepted in the per-call ``config`` mapping
CALL_OPTIONS = frozenset({"headers", "timeout", "params", "cancel_previous"})

_ABSOLUTE_URL = re.compile(r"^[a-zA-Z][a-zA-Z\d+\-.]*://")


def join_url(base_address: str, url: str) -> str:
    """Resolve ``url`` against ``base_address`` unless it is already absolute."""
    if _ABSOLUTE_URL.match(url) or not base_address:
        return url
    return f"{base_address.rstrip('/')}/{url.lstrip('/')}"


class HttpLifecycleClient:
    """HTTP client with caching, cancellation, token refresh and timing.

    Each client owns its settings, cache, registry and token manager. It
    also owns the transport when it created one, and closes it on
    :meth:`aclose`.

    :param settings: Resolved settings; built from ``overrides`` when omitted
    :param transport: Transport to send requests through
    :param observer: Receiver of durations and unhandled errors
    :param token_store: Storage for refresh and access tokens
    :param clock: Clock in seconds for the cache, timing and token expiry
    :param overrides: Option overrides, snake_case or camelCase
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        transport: Optional[HttpTransport] = None,
        observer: Optional[Observer] = None,
        token_store: Optional[TokenStore] = None,
        clock: Optional[Callable[[], float]] = None,
        **overrides: Any,
    ):
        if settings is None:
            settings = resolve_config(overrides)
        elif overrides:
            settings = settings.merged(overrides)
        self.settings = settings

        self._owns_transport = transport is None
        self.transport: HttpTransport = transport or HttpxTransport()
        self.observer: Observer = observer or LoggingObserver()

        self.cache = ResponseCache(
            ttl=settings.cache_ttl,
            sweep_interval=settings.cache_sweep_interval,
            enabled=settings.cache_enabled,
            clock=clock or time.monotonic,
        )
        self.registry = PendingRequestRegistry(enabled=settings.cancellation_enabled)
        self.token_manager = TokenManager(
            self.transport,
            join_url(settings.base_address, settings.refresh_endpoint),
            refresh_token=settings.refresh_token,
            refresh_threshold=settings.token_refresh_threshold,
            token_store=token_store,
            timeout=settings.timeout or None,
            clock=clock or time.time,
        )
        self.classifier = ErrorClassifier(
            token_refresh_enabled=settings.token_refresh_enabled,
            observer=self.observer,
            error_handling_enabled=settings.error_handling_enabled,
        )
        self.retry_controller = RetryController(
            self.token_manager,
            retry_enabled=settings.retry_enabled,
            retry_delay=settings.retry_delay,
        )

        self.interceptors = InterceptorPipeline()
        if settings.performance_monitoring_enabled:
            self.interceptors.use(TimingInterceptor(self.observer, clock=clock))
        if settings.cancellation_enabled:
            self.interceptors.use(CancellationInterceptor(self.registry))
        if settings.token_refresh_enabled:
            self.interceptors.use(AuthInterceptor(self.token_manager))

        logger.debug(
            f"Initialized client for {sanitize_url(settings.base_address)} "
            f"(cache={settings.cache_enabled}, cancellation={settings.cancellation_enabled}, "
            f"token_refresh={settings.token_refresh_enabled})"
        )

    async def __aenter__(self) -> "HttpLifecycleClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # Call surface

    async def get(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        config: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Send a GET request and return the response payload.

        Responses are cached for ``cache_ttl`` seconds per identity.
        """
        return await self.request("GET", url, params=params, config=config)

    async def post(
        self, url: str, data: Any = None, config: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """Send a POST request and return the response payload."""
        return await self.request("POST", url, data=data, config=config)

    async def put(
        self, url: str, data: Any = None, config: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """Send a PUT request and return the response payload."""
        return await self.request("PUT", url, data=data, config=config)

    async def patch(
        self, url: str, data: Any = None, config: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """Send a PATCH request and return the response payload."""
        return await self.request("PATCH", url, data=data, config=config)

    async def delete(self, url: str, config: Optional[Mapping[str, Any]] = None) -> Any:
        """Send a DELETE request and return the response payload."""
        return await self.request("DELETE", url, config=config)

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        data: Any = None,
        config: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Send a request and return its payload.

        :raises HttpLifecycleError: The classified failure
        """
        result = await self.exchange(method, url, params=params, data=data, config=config)
        return result.unwrap()

    async def exchange(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        data: Any = None,
        config: Optional[Mapping[str, Any]] = None,
    ) -> ExchangeResult:
        """Send a request and return its outcome without raising.

        Failures are reported (logged and passed to the observer) before
        they are returned.
        """
        try:
            request = self._build_request(method, url, params, data, config)
        except SetupError as e:
            return self._failure(e, None)

        try:
            payload = await self._execute(request)
        except UnauthorizedError as e:
            if not self.classifier.is_recoverable(e, request):
                return self._failure(e, request)
            try:
                payload = await self._recover(request, e)
            except HttpLifecycleError as final:
                return self._failure(final, request)
        except HttpLifecycleError as e:
            return self._failure(e, request)

        return ExchangeResult.success(payload, request)

    # Cache and registry management

    def clear_cache(self) -> int:
        """Drop every cached response."""
        return self.cache.clear()

    def cache_status(self) -> Dict[str, Any]:
        """Return cache statistics plus pending-request and token state."""
        status = self.cache.stats()
        status["pending_requests"] = len(self.registry)
        status["token_status"] = self.token_manager.status().value
        return status

    def cancel_pending(self, reason: str = DEFAULT_CANCEL_REASON) -> int:
        """Cancel every in-flight request."""
        return self.registry.cancel_all(reason)

    async def aclose(self) -> None:
        """Cancel in-flight requests and close an owned transport."""
        self.cancel_pending("Client closed")
        if self._owns_transport:
            await self.transport.aclose()

    # Internals

    def _build_request(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]],
        data: Any,
        config: Optional[Mapping[str, Any]],
    ) -> RequestSpec:
        if not isinstance(method, str) or method.upper() not in SUPPORTED_METHODS:
            raise SetupError(f"Unsupported HTTP method: {method!r}")
        method = method.upper()
        if not isinstance(url, str) or not url.strip():
            raise SetupError(f"A non-empty URL is required, got {url!r}")

        described = {"method": method, "url": url}
        if config is not None and not isinstance(config, Mapping):
            raise SetupError(
                f"Request config must be a mapping, got {type(config).__name__}",
                request=described,
            )
        config = dict(config or {})
        unknown = sorted(set(config) - CALL_OPTIONS)
        if unknown:
            raise SetupError(
                f"Unknown request option(s): {', '.join(unknown)}",
                request=described,
            )
        for name, value in (
            ("params", params),
            ("config params", config.get("params")),
            ("config headers", config.get("headers")),
        ):
            if value is not None and not isinstance(value, Mapping):
                raise SetupError(
                    f"Request {name} must be a mapping, got {type(value).__name__}",
                    request=described,
                )

        merged_params = {**(config.get("params") or {}), **(params or {})}
        headers = {**self.settings.headers, **(config.get("headers") or {})}

        timeout = config.get("timeout", self.settings.timeout)
        if timeout is not None and (
            isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 0
        ):
            raise SetupError(f"Invalid timeout: {timeout!r}", request=described)

        resolved = join_url(self.settings.base_address, url)
        identity = RequestIdentity.from_parts(method, resolved, merged_params)
        return RequestSpec(
            method=method,
            url=resolved,
            params=merged_params or None,
            body=data,
            headers=headers,
            timeout=timeout or None,
            cancel_previous=config.get("cancel_previous"),
            identity=identity,
        )

    async def _execute(self, request: RequestSpec) -> Any:
        """Run one request through the pipeline and classify the outcome.

        The registry record is released on every settle, including when a
        response interceptor fails.
        """
        try:
            request = await self.interceptors.run_request(request)
        except HttpLifecycleError as e:
            try:
                await self.interceptors.run_response(request, None, e)
            finally:
                self._release(request)
            raise

        try:
            return await self._complete(request)
        finally:
            self._release(request)

    def _release(self, request: RequestSpec) -> None:
        if request.identity is not None and request.handle is not None:
            self.registry.clear(request.identity, request.handle)

    async def _complete(self, request: RequestSpec) -> Any:
        if request.handle is not None and request.handle.cancelled:
            error = self.classifier.classify(request)
            await self.interceptors.run_response(request, None, error)
            raise error

        if request.method == "GET":
            cached = self.cache.get(request.identity)
            if cached is not None:
                request.metadata["cache_hit"] = True
                await self.interceptors.run_response(request, None, None)
                return cached

        response: Optional[TransportResponse] = None
        failure: Optional[BaseException] = None
        try:
            response = await self._send(request)
        except (HttpLifecycleError, TransportFailure) as e:
            failure = e

        await self.interceptors.run_response(request, response, failure)

        error = self.classifier.classify(request, response=response, error=failure)
        if error is not None:
            raise error

        if request.method == "GET":
            self.cache.set(request.identity, response.data)
        return response.data

    async def _send(self, request: RequestSpec) -> TransportResponse:
        log_request(request.method, request.url, request.headers, request.body, logger)
        dispatch = self._dispatch(request)
        if request.handle is None:
            return await dispatch
        return await request.handle.run(dispatch, request.descriptor())

    async def _dispatch(self, request: RequestSpec) -> TransportResponse:
        try:
            return await self.transport.send(
                request.method,
                request.url,
                request.params,
                request.body,
                dict(request.headers),
                request.handle,
                request.timeout,
            )
        except TransportFailure:
            raise
        except Exception as e:
            # A transport that raised anything else still produced no response
            raise TransportFailure(f"{type(e).__name__}: {e}", cause=e) from e

    async def _recover(self, request: RequestSpec, error: UnauthorizedError) -> Any:
        """Refresh and re-issue once, keeping the original cancellable meanwhile."""
        if request.handle is not None and request.identity not in self.registry:
            self.registry.register(request.identity, request.handle, cancel_previous=False)

        async def reissue(retry: RequestSpec) -> Any:
            self.registry.clear(request.identity, request.handle)
            return await self._execute(retry)

        try:
            return await self.retry_controller.recover(request, error, reissue)
        finally:
            self.registry.clear(request.identity, request.handle)

    def _failure(
        self, error: HttpLifecycleError, request: Optional[RequestSpec]
    ) -> ExchangeResult:
        self.classifier.report(error)
        return ExchangeResult.failure(error, request)


def create_client(
    settings: Optional[ClientSettings] = None,
    *,
    configure_logging: bool = False,
    **kwargs: Any,
) -> HttpLifecycleClient:
    """Create a client, optionally installing the sanitizing log handler.

    :param settings: Resolved settings; built from ``kwargs`` when omitted
    :param configure_logging: Call :func:`setup_secure_logging` with the
        client's ``log_level``
    :param kwargs: Client keyword arguments and option overrides
    :return: A new client
    """
    client = HttpLifecycleClient(settings, **kwargs)
    if configure_logging:
        setup_secure_logging(client.settings.log_level)
    return client
