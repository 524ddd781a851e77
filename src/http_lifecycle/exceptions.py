"""Structured exception classes for http-lifecycle.

Every failure a caller can observe from the client is one of these
classes. They share a common base so callers can catch the whole family,
while ``CanceledError`` stays distinguishable from real failures.
"""

import json
from typing import Any, Dict, Optional


class HttpLifecycleError(Exception):
    """Base exception for all http-lifecycle errors.

    :param message: Human-readable error message
    :param code: Optional error code for programmatic handling
    :param details: Optional dictionary containing additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the exception with message, code, and details."""
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format.

        :return: Dictionary containing error code, message, and details
        """
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def to_json(self) -> str:
        """Convert exception to JSON string.

        :return: JSON-encoded string representation of the exception
        """
        return json.dumps(self.to_dict(), default=str)


class ConfigurationError(HttpLifecycleError):
    """Raised when client options cannot be resolved.

    :param message: Description of the configuration error
    :param setting: Optional name of the problematic setting
    """

    def __init__(self, message: str, setting: Optional[str] = None):
        """Initialize configuration error with message and optional setting."""
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=details)
        self.setting = setting


class SetupError(HttpLifecycleError):
    """Raised when a request fails before it is dispatched.

    Covers malformed calls (bad method, empty URL, unserializable
    parameters, unknown per-request options) and request interceptors
    that raise unexpected exceptions.

    :param message: Description of the setup failure
    :param request: Optional request descriptor
    """

    def __init__(self, message: str, request: Optional[Dict[str, Any]] = None):
        """Initialize setup error with message and optional request descriptor."""
        details = {}
        if request:
            details["request"] = request
        super().__init__(message=message, code="SETUP_ERROR", details=details)
        self.request = request


class InterceptorError(HttpLifecycleError):
    """Raised when a response interceptor fails while a request settles.

    :param message: Description of the interceptor failure
    :param request: Optional request descriptor
    """

    def __init__(self, message: str, request: Optional[Dict[str, Any]] = None):
        details = {}
        if request:
            details["request"] = request
        super().__init__(message=message, code="INTERCEPTOR_ERROR", details=details)
        self.request = request


class TransportError(HttpLifecycleError):
    """Raised when no response was received for a dispatched request.

    :param message: Description of the transport failure
    :param request: Optional request descriptor
    """

    def __init__(self, message: str, request: Optional[Dict[str, Any]] = None):
        """Initialize transport error with message and optional request descriptor."""
        details = {}
        if request:
            details["request"] = request
        super().__init__(message=message, code="TRANSPORT_ERROR", details=details)
        self.request = request


class ResponseError(HttpLifecycleError):
    """Raised when the server answered with a non-2xx status.

    :param message: Description of the error
    :param status: HTTP status code from the response
    :param body: Decoded response body
    :param request: Optional request descriptor
    """

    def __init__(
        self,
        message: str,
        status: int,
        body: Any = None,
        request: Optional[Dict[str, Any]] = None,
    ):
        """Initialize response error with status, body, and request."""
        details: Dict[str, Any] = {"status": status}
        if body is not None:
            details["body"] = body
        if request:
            details["request"] = request
        super().__init__(message=message, code="RESPONSE_ERROR", details=details)
        self.status = status
        self.body = body
        self.request = request


class NotFoundError(ResponseError):
    """Raised when the server answered 404."""

    def __init__(
        self,
        message: str,
        body: Any = None,
        request: Optional[Dict[str, Any]] = None,
    ):
        """Initialize not-found error."""
        super().__init__(message=message, status=404, body=body, request=request)
        self.code = "NOT_FOUND_ERROR"


class UnauthorizedError(ResponseError):
    """Raised when the server answered 401 and no recovery applied."""

    def __init__(
        self,
        message: str,
        body: Any = None,
        request: Optional[Dict[str, Any]] = None,
    ):
        """Initialize unauthorized error."""
        super().__init__(message=message, status=401, body=body, request=request)
        self.code = "UNAUTHORIZED_ERROR"


class TokenRefreshError(HttpLifecycleError):
    """Raised when the credential-refresh exchange fails.

    :param message: Description of the refresh failure
    :param status: Optional HTTP status returned by the refresh endpoint
    """

    def __init__(self, message: str, status: Optional[int] = None):
        """Initialize token refresh error with message and optional status."""
        details = {}
        if status is not None:
            details["status"] = status
        super().__init__(message=message, code="TOKEN_REFRESH_ERROR", details=details)
        self.status = status


class CanceledError(HttpLifecycleError):
    """Raised when a request was superseded or explicitly canceled.

    Callers that issue duplicate reads on purpose usually ignore it.

    :param message: Cancellation reason
    :param request: Optional request descriptor
    """

    def __init__(
        self,
        message: str = "Request canceled",
        request: Optional[Dict[str, Any]] = None,
    ):
        """Initialize cancellation error with reason and request descriptor."""
        details = {}
        if request:
            details["request"] = request
        super().__init__(message=message, code="CANCELED", details=details)
        self.request = request
