"""Default transport backed by ``httpx.AsyncClient``."""

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..models.request import TransportResponse
from .base import TransportFailure

logger = logging.getLogger(__name__)

DEFAULT_LIMITS = httpx.Limits(
    max_keepalive_connections=10,
    max_connections=20,
    keepalive_expiry=30.0,
)


class HttpxTransport:
    """Send requests through a shared ``httpx.AsyncClient``.

    The client is created on first use unless one is supplied. A supplied
    client is not closed by :meth:`aclose`.

    :param client: Optional preconfigured client
    :param limits: Connection limits for a client created here
    :param follow_redirects: Whether a client created here follows redirects
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        limits: Optional[httpx.Limits] = None,
        follow_redirects: bool = True,
    ):
        self._client = client
        self._owns_client = client is None
        self._limits = limits or DEFAULT_LIMITS
        self._follow_redirects = follow_redirects

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=self._limits, follow_redirects=self._follow_redirects
            )
            logger.debug("Created HTTP client")
        return self._client

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
        """Send one request and decode the response body.

        :raises TransportFailure: If no response was received
        """
        kwargs: Dict[str, Any] = {"params": params, "headers": headers}
        if timeout is not None:
            kwargs["timeout"] = httpx.Timeout(timeout)
        if isinstance(body, (bytes, str)):
            kwargs["content"] = body
        elif body is not None:
            kwargs["json"] = body

        try:
            response = await self._get_client().request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise TransportFailure(f"{type(e).__name__}: {e}", cause=e) from e

        return TransportResponse(
            status=response.status_code,
            data=_decode_body(response),
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed HTTP client")


def _decode_body(response: httpx.Response) -> Any:
    """Return the JSON body, the text body, or None when empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
