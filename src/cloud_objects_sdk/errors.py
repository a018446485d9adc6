"""Error classes for the Cloud Objects SDK.

Implements a structured error hierarchy with error codes, correlation IDs
and upstream response details for logging and tracing.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

RETRYABLE_STATUS = 570


class ErrorCode(StrEnum):
    """Standardized error codes for the Cloud Objects SDK."""

    # Authentication errors (1xxx)
    TOKEN_MALFORMED = "AUTH_1001"
    AUTH_FAILED = "AUTH_1002"
    NOT_SIGNED_IN = "AUTH_1003"

    # Validation errors (2xxx)
    INVALID_CONFIG = "VAL_2001"
    NOT_INITIALIZED = "VAL_2002"

    # Network errors (3xxx)
    NETWORK_ERROR = "NET_3001"
    TIMEOUT_ERROR = "NET_3002"

    # Remote errors (5xxx)
    REMOTE_ERROR = "SRV_5001"
    SERVICE_OVERLOADED = "SRV_5002"


class CloudObjectsError(Exception):
    """Base error for the Cloud Objects SDK with structured error information."""

    def __init__(
        self,
        message: str,
        code: ErrorCode | str,
        *,
        status_code: int | None = None,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if isinstance(code, str) else code.value
        self.status_code = status_code
        self.correlation_id = correlation_id
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Log-friendly view of the error; absent fields are left out."""
        result: dict[str, Any] = {"type": type(self).__name__, "error": self.message, "code": self.code}
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.correlation_id:
            result["correlation_id"] = self.correlation_id
        if self.details:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        status = f", status_code={self.status_code}" if self.status_code is not None else ""
        return f"{type(self).__name__}({self.code}: {self.message!r}{status})"


class TransportError(CloudObjectsError):
    """No response was received from the server."""

    def __init__(
        self,
        message: str = "Network request failed",
        *,
        correlation_id: str | None = None,
        cause: Exception | None = None,
        code: ErrorCode = ErrorCode.NETWORK_ERROR,
    ) -> None:
        super().__init__(
            message,
            code,
            correlation_id=correlation_id,
            details={"cause": str(cause)} if cause else None,
        )
        self.__cause__ = cause


class RequestTimeoutError(TransportError):
    """Request exceeded the transport timeout."""

    def __init__(
        self,
        message: str = "Request timed out",
        *,
        correlation_id: str | None = None,
        cause: Exception | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            message,
            correlation_id=correlation_id,
            cause=cause,
            code=ErrorCode.TIMEOUT_ERROR,
        )
        if timeout_seconds:
            self.details["timeout_seconds"] = timeout_seconds


class RemoteError(CloudObjectsError):
    """A response was received with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        body: Any = None,
        correlation_id: str | None = None,
    ) -> None:
        code = (
            ErrorCode.SERVICE_OVERLOADED
            if status_code == RETRYABLE_STATUS
            else ErrorCode.REMOTE_ERROR
        )
        super().__init__(
            message,
            code,
            status_code=status_code,
            correlation_id=correlation_id,
            details={"body": body} if body is not None else None,
        )
        self.body = body

    @property
    def is_retryable(self) -> bool:
        return self.status_code == RETRYABLE_STATUS


class MalformedTokenError(CloudObjectsError):
    """Token could not be decoded."""

    def __init__(
        self,
        message: str = "Token is malformed",
        *,
        correlation_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.TOKEN_MALFORMED,
            status_code=401,
            correlation_id=correlation_id,
        )


class AuthFailedError(CloudObjectsError):
    """The server rejected the session; the local credential was cleared."""

    def __init__(
        self,
        message: str = "Authentication failed",
        *,
        correlation_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.AUTH_FAILED,
            status_code=401,
            correlation_id=correlation_id,
        )


class NotSignedInError(CloudObjectsError):
    """Operation needs a signed-in identity."""

    def __init__(self, message: str = "No signed-in user") -> None:
        super().__init__(message, ErrorCode.NOT_SIGNED_IN, status_code=401)


class NotInitializedError(CloudObjectsError):
    """Operation attempted before the client was initialized."""

    def __init__(self, message: str = "Cloud Objects SDK not initialized") -> None:
        super().__init__(message, ErrorCode.NOT_INITIALIZED)


class InvalidConfigError(CloudObjectsError):
    """Invalid SDK configuration."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.INVALID_CONFIG,
            details={"field": field} if field else None,
        )
