"""HTTP transport for the Cloud Objects SDK.

The transport sends one request and reports what came back. HTTP statuses
are data at this layer; only the absence of a response is an error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .core.errors import ErrorFactory
from .telemetry import get_logger, trace_operation

if TYPE_CHECKING:
    from .config import ClientConfig


class TransportResponse(BaseModel):
    """Status, headers and decoded body of a received response."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(Protocol):
    """Generic request/response function used by the SDK."""

    async def send(
        self,
        url: str,
        method: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        body: Any = None,
    ) -> TransportResponse:
        ...

    async def aclose(self) -> None:
        ...


def create_async_http_client(
    config: ClientConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create configured async HTTP client.

    Args:
        config: SDK configuration.
        transport: Optional httpx transport override.

    Returns:
        Configured httpx.AsyncClient.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=config.connect_timeout,
            read=config.timeout,
            write=config.timeout,
            pool=config.timeout,
        ),
        headers={
            "User-Agent": "cloud-objects-sdk/0.1.0 Python",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "cache-control": "max-age=0",
        },
        verify=config.verify_ssl,
        follow_redirects=False,
        transport=transport,
    )


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpxTransport:
    """Transport backed by httpx.AsyncClient."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client
        self._logger = get_logger()

    @classmethod
    def from_config(cls, config: ClientConfig) -> HttpxTransport:
        return cls(create_async_http_client(config))

    async def send(
        self,
        url: str,
        method: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        body: Any = None,
    ) -> TransportResponse:
        """Send one request.

        Raises:
            RequestTimeoutError: If the transport timeout elapsed.
            TransportError: If no response was received.
        """
        method = method.upper()
        with trace_operation(
            "http_request",
            attributes={"http.method": method, "http.url": url},
        ) as span:
            try:
                response = await self._client.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=body,
                )
            except httpx.HTTPError as e:
                self._logger.warning("Request failed", method=method, url=url, error=str(e))
                raise ErrorFactory.from_exception(e) from e

            span.set_attribute("http.status_code", response.status_code)
            return TransportResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                body=_decode_body(response),
            )

    async def aclose(self) -> None:
        await self._client.aclose()
