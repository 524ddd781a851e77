"""Tracking and cancellation of in-flight requests."""

from .pending import (
    DEFAULT_CANCEL_REASON,
    CancellationHandle,
    PendingRequestRecord,
    PendingRequestRegistry,
)

__all__ = [
    "DEFAULT_CANCEL_REASON",
    "CancellationHandle",
    "PendingRequestRecord",
    "PendingRequestRegistry",
]
