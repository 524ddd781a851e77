"""Request-lifecycle management over an injected HTTP transport.

This package wraps a transport with response caching, cancellation of
superseded duplicate requests, bearer-token acquisition with coalesced
refresh, timing instrumentation and centralized error classification
with a one-shot retry after a 401.

:var __version__: Current package version
:type __version__: str
"""

from .config import ClientSettings, resolve_config
from .core import HttpLifecycleClient, create_client
from .exceptions import (
    CanceledError,
    ConfigurationError,
    HttpLifecycleError,
    InterceptorError,
    NotFoundError,
    ResponseError,
    SetupError,
    TokenRefreshError,
    TransportError,
    UnauthorizedError,
)
from .models import ExchangeResult, RequestIdentity, TransportResponse
from .observers import LoggingObserver, NullObserver, Observer
from .transport import HttpTransport, HttpxTransport, TransportFailure

__version__ = "0.1.0"

__all__ = [
    "CanceledError",
    "ClientSettings",
    "ConfigurationError",
    "ExchangeResult",
    "HttpLifecycleClient",
    "HttpLifecycleError",
    "InterceptorError",
    "HttpTransport",
    "HttpxTransport",
    "LoggingObserver",
    "NotFoundError",
    "NullObserver",
    "Observer",
    "RequestIdentity",
    "ResponseError",
    "SetupError",
    "TokenRefreshError",
    "TransportError",
    "TransportFailure",
    "TransportResponse",
    "UnauthorizedError",
    "create_client",
    "resolve_config",
]
