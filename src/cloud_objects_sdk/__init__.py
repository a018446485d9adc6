"""Cloud Objects Python SDK."""

from .broadcaster import AuthStatusBroadcaster, Broadcaster, Subscription
from .client import ClientRegistry, CloudObjectsClient
from .cloud_object import CloudObject
from .config import ClientConfig, Region, RetryConfig, TelemetryConfig
from .errors import (
    CloudObjectsError,
    TransportError,
    RequestTimeoutError,
    RemoteError,
    MalformedTokenError,
    AuthFailedError,
    NotSignedInError,
    NotInitializedError,
    InvalidConfigError,
)
from .models import (
    AuthChangedEvent,
    AuthStatus,
    CallResponse,
    Credential,
    ObjectKey,
    RetryPolicy,
    TokenPayload,
)
from .realtime import MemoryPushSubsystem, Partition, PushSubsystem
from .storage import KeyValueStorage, MemoryStorage

__all__ = [
    "CloudObjectsClient",
    "ClientRegistry",
    "CloudObject",
    "ClientConfig",
    "Region",
    "RetryConfig",
    "TelemetryConfig",
    "CloudObjectsError",
    "TransportError",
    "RequestTimeoutError",
    "RemoteError",
    "MalformedTokenError",
    "AuthFailedError",
    "NotSignedInError",
    "NotInitializedError",
    "InvalidConfigError",
    "AuthChangedEvent",
    "AuthStatus",
    "AuthStatusBroadcaster",
    "Broadcaster",
    "Subscription",
    "CallResponse",
    "Credential",
    "ObjectKey",
    "RetryPolicy",
    "TokenPayload",
    "Partition",
    "PushSubsystem",
    "MemoryPushSubsystem",
    "KeyValueStorage",
    "MemoryStorage",
]

__version__ = "0.1.0"
