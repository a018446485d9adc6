"""Core components of the Cloud Objects SDK.

Request resolution, credential lifecycle and retrying execution shared by
the client and its cloud object handles.
"""

from __future__ import annotations

from .errors import ErrorFactory
from .endpoints import EndpointResolver, Operation, PreparedRequest, canonicalize
from .token_lifecycle import TokenLifecycle
from .http_executor import RetryableCaller

__all__ = [
    "ErrorFactory",
    "EndpointResolver",
    "Operation",
    "PreparedRequest",
    "canonicalize",
    "TokenLifecycle",
    "RetryableCaller",
]
