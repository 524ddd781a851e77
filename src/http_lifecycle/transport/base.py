"""Transport boundary.

A transport sends one HTTP request and returns a
:class:`~http_lifecycle.models.request.TransportResponse`. Non-2xx
statuses are returned as responses; only the absence of a response is
an exception (:class:`TransportFailure`).
"""

from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from ..models.request import TransportResponse


class TransportFailure(Exception):
    """Raised by a transport when no response was received.

    :param message: Description of the failure
    :param cause: The underlying exception, if any
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


@runtime_checkable
class HttpTransport(Protocol):
    """Interface every transport implements."""

    async def send(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]],
        body: Any,
        headers: Dict[str, str],
        handle: Any,
        timeout: Optional[float],
    ) -> TransportResponse:
        ...

    async def aclose(self) -> None:
        ...
