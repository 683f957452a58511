"""Sync module - handles ActivityWatch querying and conjure.so uploading."""

from .aw_client import AWClient, AWClientError
from .conjure_client import ConjureAuthError, ConjureClient, ConjureClientError
from .decode import DecodeError
from .protocols import AWClientProtocol, ConjureClientProtocol
from .retry import RetryConfig, RetryExhausted, retry_with_backoff
from .sync_engine import SyncEngine

__all__ = [
    "AWClient",
    "AWClientError",
    "ConjureClient",
    "ConjureClientError",
    "ConjureAuthError",
    "DecodeError",
    "AWClientProtocol",
    "ConjureClientProtocol",
    "RetryConfig",
    "RetryExhausted",
    "retry_with_backoff",
    "SyncEngine",
]
