"""Core request lifecycle: pipeline, classification and the client."""

from .classifier import ErrorClassifier, RetryController
from .client import CALL_OPTIONS, HttpLifecycleClient, create_client, join_url
from .pipeline import (
    AuthInterceptor,
    CancellationInterceptor,
    InterceptorPipeline,
    TimingInterceptor,
)

__all__ = [
    "CALL_OPTIONS",
    "AuthInterceptor",
    "CancellationInterceptor",
    "ErrorClassifier",
    "HttpLifecycleClient",
    "InterceptorPipeline",
    "RetryController",
    "TimingInterceptor",
    "create_client",
    "join_url",
]
