"""Shared helpers for Cloud Objects SDK tests.

Provides token minting, a scripted in-memory transport and a controllable
clock shared across test modules.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union
from urllib.parse import urlsplit

import jwt

from cloud_objects_sdk.http import TransportResponse

NOW = 1_700_000_000
TEST_SECRET = "cloud-objects-sdk-test-secret-0123456789"


def make_token(**claims: Any) -> str:
    """Mint an HS256 token; the SDK never verifies the signature."""
    return jwt.encode(claims, TEST_SECRET, algorithm="HS256")


def token_body(
    *,
    issued_at: int = NOW,
    access_ttl: int = 600,
    refresh_ttl: int = 86_400,
    user_id: str = "user-1",
    identity: str = "enduser",
    serial: int = 0,
    realtime: bool = True,
) -> dict[str, Any]:
    """Body of a successful sign-in or refresh response.

    ``serial`` makes otherwise equal tokens distinct.
    """
    claims = {"userId": user_id, "identity": identity, "projectId": "proj1", "iat": issued_at}
    body: dict[str, Any] = {
        "accessToken": make_token(**claims, exp=issued_at + access_ttl, jti=f"a{serial}"),
        "refreshToken": make_token(**claims, exp=issued_at + refresh_ttl, jti=f"r{serial}"),
    }
    if realtime:
        body["firebase"] = {
            "apiKey": "push-api-key",
            "projectId": "push-project",
            "customToken": f"push-token-{serial}",
        }
    return body


def respond(status_code: int = 200, body: Any = None, **headers: str) -> TransportResponse:
    return TransportResponse(status_code=status_code, headers=headers, body=body)


@dataclass
class SentRequest:
    url: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def path(self) -> str:
        return urlsplit(self.url).path


Responder = Union[TransportResponse, Exception, Callable[[SentRequest], Awaitable[TransportResponse]]]


class FakeTransport:
    """Scripted transport.

    Responses are registered per path suffix and consumed in order; the last
    one registered for a suffix keeps answering.
    """

    def __init__(self) -> None:
        self.requests: list[SentRequest] = []
        self.closed = False
        self._routes: dict[str, list[Responder]] = {}

    def on(self, path_suffix: str, *responses: Responder) -> None:
        self._routes.setdefault(path_suffix, []).extend(responses)

    def sent_to(self, path_suffix: str) -> list[SentRequest]:
        return [r for r in self.requests if r.path.endswith(path_suffix)]

    async def send(
        self,
        url: str,
        method: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        body: Any = None,
    ) -> TransportResponse:
        request = SentRequest(url, method, dict(headers or {}), dict(params or {}), body)
        self.requests.append(request)

        for suffix, queue in self._routes.items():
            if request.path.endswith(suffix):
                responder = queue.pop(0) if len(queue) > 1 else queue[0]
                break
        else:
            return respond(404, {"message": f"no route for {request.path}"})

        if isinstance(responder, Exception):
            raise responder
        if isinstance(responder, TransportResponse):
            return responder
        result = responder(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Replacement for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
