"""http-lifecycle models package.

Request records, identities and exchange outcomes live in ``request``;
the Pydantic models for credentials live in ``base_models``.
"""

from .base_models import RefreshTokenResponse, TokenState
from .request import (
    READ_METHODS,
    SUPPORTED_METHODS,
    ExchangeResult,
    RequestIdentity,
    RequestSpec,
    TransportResponse,
)

__all__ = [
    "READ_METHODS",
    "SUPPORTED_METHODS",
    "ExchangeResult",
    "RefreshTokenResponse",
    "RequestIdentity",
    "RequestSpec",
    "TokenState",
    "TransportResponse",
]
