"""Wire transports."""

from .base import HttpTransport, TransportFailure
from .httpx_transport import HttpxTransport

__all__ = ["HttpTransport", "HttpxTransport", "TransportFailure"]
