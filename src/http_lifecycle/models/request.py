"""Request records that travel through the interceptor pipeline."""

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

from ..exceptions import HttpLifecycleError, SetupError

READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
SUPPORTED_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"})


@dataclass(frozen=True)
class RequestIdentity:
    """Deterministic key used for caching and duplicate detection.

    Two requests are duplicates iff their identities compare equal. The
    body never participates.
    """

    method: str
    url: str
    params_key: str = "{}"

    @classmethod
    def from_parts(
        cls, method: str, url: str, params: Optional[Mapping[str, Any]] = None
    ) -> "RequestIdentity":
        """Build an identity from method, url and query parameters.

        :raises SetupError: If the parameters cannot be serialized
        """
        try:
            params_key = json.dumps(
                dict(params or {}), sort_keys=True, separators=(",", ":")
            )
        except (TypeError, ValueError) as e:
            raise SetupError(
                f"Query parameters for {method.upper()} {url} are not serializable: {e}"
            ) from e
        return cls(method=method.upper(), url=url, params_key=params_key)

    def __str__(self) -> str:
        return f"{self.method}{self.url}{self.params_key}"


@dataclass
class RequestSpec:
    """Mutable per-call request record.

    Interceptors stamp it (issue time, cancellation handle, authorization
    header) on its way to the transport.
    """

    method: str
    url: str
    params: Optional[Dict[str, Any]] = None
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None
    cancel_previous: Optional[bool] = None
    is_retry: bool = False
    identity: Optional[RequestIdentity] = None
    issued_at: Optional[float] = None
    handle: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_read(self) -> bool:
        """Return whether this is an idempotent read request."""
        return self.method.upper() in READ_METHODS

    def should_cancel_previous(self) -> bool:
        """Return whether registering this request cancels an in-flight duplicate.

        Reads cancel their duplicates unless they opt out with
        ``cancel_previous=False``. Writes do not cancel by default, unlike
        reads: the identity ignores the body, so two writes to the same
        URL are not necessarily the same operation. A write opts in with
        ``cancel_previous=True``.
        """
        if self.cancel_previous is None:
            return self.is_read
        return self.cancel_previous

    def descriptor(self) -> Dict[str, Any]:
        """Return a loggable description of the request (no headers, no body)."""
        described: Dict[str, Any] = {"method": self.method, "url": self.url}
        if self.params:
            described["params"] = dict(self.params)
        if self.is_retry:
            described["retry"] = True
        return described

    def retry_copy(self) -> "RequestSpec":
        """Return a fresh copy for the single post-refresh re-issue."""
        headers = {
            k: v for k, v in self.headers.items() if k.lower() != "authorization"
        }
        return replace(
            self,
            headers=headers,
            is_retry=True,
            issued_at=None,
            handle=None,
            metadata=dict(self.metadata),
        )


@dataclass
class TransportResponse:
    """Response produced by a transport."""

    status: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Return whether the status is 2xx."""
        return 200 <= self.status < 300


@dataclass
class ExchangeResult:
    """Outcome of one request: a payload or a classified error."""

    payload: Any = None
    error: Optional[HttpLifecycleError] = None
    request: Optional[RequestSpec] = None

    @classmethod
    def success(cls, payload: Any, request: Optional[RequestSpec] = None) -> "ExchangeResult":
        return cls(payload=payload, request=request)

    @classmethod
    def failure(
        cls, error: HttpLifecycleError, request: Optional[RequestSpec] = None
    ) -> "ExchangeResult":
        return cls(error=error, request=request)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the payload or raise the classified error."""
        if self.error is not None:
            raise self.error
        return self.payload
