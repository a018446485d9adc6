"""Centralized error factory for the Cloud Objects SDK.

Provides consistent error creation and transformation across all SDK components.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import httpx

from ..errors import (
    CloudObjectsError,
    RemoteError,
    RequestTimeoutError,
    TransportError,
)

if TYPE_CHECKING:
    from ..http import TransportResponse


class ErrorFactory:
    """Centralized error creation with consistent structure.

    All errors created through this factory include:
    - Standardized error codes
    - A correlation ID for tracing
    - The upstream status and body where a response was received
    """

    @staticmethod
    def generate_correlation_id() -> str:
        """Generate a unique correlation ID."""
        return str(uuid.uuid4())

    @staticmethod
    def from_response(
        response: TransportResponse,
        *,
        correlation_id: str | None = None,
    ) -> RemoteError:
        """Create SDK error from a non-2xx response.

        Args:
            response: Received response.
            correlation_id: Optional correlation ID for tracing.

        Returns:
            RemoteError carrying the upstream status and body.
        """
        correlation_id = correlation_id or ErrorFactory.generate_correlation_id()
        return RemoteError(
            _describe(response.status_code, response.body),
            status_code=response.status_code,
            body=response.body,
            correlation_id=correlation_id,
        )

    @staticmethod
    def from_exception(
        exc: Exception,
        *,
        correlation_id: str | None = None,
    ) -> CloudObjectsError:
        """Create SDK error from exception.

        Args:
            exc: Original exception.
            correlation_id: Optional correlation ID for tracing.

        Returns:
            Appropriate CloudObjectsError subclass.
        """
        correlation_id = correlation_id or ErrorFactory.generate_correlation_id()

        if isinstance(exc, CloudObjectsError):
            if exc.correlation_id is None:
                exc.correlation_id = correlation_id
            return exc

        if isinstance(exc, httpx.TimeoutException):
            return RequestTimeoutError(
                f"Request timed out: {exc}",
                correlation_id=correlation_id,
                cause=exc,
            )

        if isinstance(exc, httpx.ConnectError):
            return TransportError(
                f"Connection failed: {exc}",
                correlation_id=correlation_id,
                cause=exc,
            )

        if isinstance(exc, httpx.HTTPError):
            return TransportError(
                f"HTTP error: {exc}",
                correlation_id=correlation_id,
                cause=exc,
            )

        return TransportError(
            f"Unexpected error: {exc}",
            correlation_id=correlation_id,
            cause=exc,
        )


def _describe(status_code: int, body: Any) -> str:
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if isinstance(message, str) and message:
            return f"Request failed with status {status_code}: {message}"
    return f"Request failed with status {status_code}"
