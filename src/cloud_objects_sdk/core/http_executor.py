"""Authenticated request execution with retry on server overload.

Only the overloaded status is retried. Requests are repeated verbatim, so
callers must only use retry policies on requests that are safe to repeat.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable

from ..errors import RETRYABLE_STATUS
from ..models import CallResponse, RetryPolicy
from ..telemetry import get_logger, trace_operation
from .errors import ErrorFactory

if TYPE_CHECKING:
    from ..http import Transport, TransportResponse
    from ..storage import InstallationId
    from .endpoints import PreparedRequest
    from .token_lifecycle import TokenLifecycle

NO_RETRY = RetryPolicy(delay=0, count=0, rate=1.0)


def should_retry(response: TransportResponse, policy: RetryPolicy) -> bool:
    """Check if a response should trigger another attempt.

    Args:
        response: Received response.
        policy: Remaining retry budget.

    Returns:
        True if should retry.
    """
    return response.status_code == RETRYABLE_STATUS and policy.can_retry


class RetryableCaller:
    """Executes cloud object requests with a bearer token and backoff."""

    def __init__(
        self,
        transport: Transport,
        lifecycle: TokenLifecycle,
        installation_id: InstallationId,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize caller.

        Args:
            transport: Transport used for every attempt.
            lifecycle: Source of the bearer token.
            installation_id: Installation id sent with every request.
            sleep: Non-blocking wait used between attempts.
        """
        self._transport = transport
        self._lifecycle = lifecycle
        self._installation_id = installation_id
        self._sleep = sleep
        self._logger = get_logger()

    async def execute(
        self,
        request: PreparedRequest,
        policy: RetryPolicy = NO_RETRY,
    ) -> CallResponse:
        """Execute request, retrying while the server reports overload.

        Args:
            request: Prepared request.
            policy: Retry budget for this call only.

        Returns:
            Successful response.

        Raises:
            RemoteError: On a non-2xx response that is not retried.
            TransportError: If no response was received (never retried).
            AuthFailedError: If a needed token refresh was rejected.
        """
        attempt = 0
        while True:
            response = await self._attempt(request, attempt)
            if response.is_success:
                return CallResponse(
                    status_code=response.status_code,
                    headers=response.headers,
                    data=response.body,
                )

            if not should_retry(response, policy):
                raise ErrorFactory.from_response(response)

            self._logger.warning(
                "Server overloaded, retrying",
                url=request.url,
                attempt=attempt,
                delay=policy.delay,
                remaining=policy.count,
            )
            await self._sleep(policy.delay)
            policy = policy.advance()
            attempt += 1

    async def _attempt(self, request: PreparedRequest, attempt: int) -> TransportResponse:
        # a retry may span a refresh, so the token is looked up per attempt
        credential = await self._lifecycle.get_valid_credential()
        headers = dict(request.headers)
        headers["installationId"] = await self._installation_id.get()
        if credential is not None:
            headers["Authorization"] = f"Bearer {credential.access_token}"

        with trace_operation(
            "cloud_object_request",
            attributes={"http.method": request.method, "http.url": request.url, "attempt": attempt},
        ):
            return await self._transport.send(
                request.url,
                request.method,
                headers=headers,
                params=request.params,
                body=request.body,
            )
