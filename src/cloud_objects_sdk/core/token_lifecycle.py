"""Credential lifecycle: decoding, expiry checks and deduplicated refresh.

Every expiry comparison is made against ``safe_now``: local wall-clock
time plus the server clock skew captured at issuance plus a fixed guard
window, so tokens are refreshed before the server would reject them even
when client and server clocks disagree.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from pydantic import ValidationError

from ..errors import AuthFailedError, MalformedTokenError, TransportError
from ..models import AuthChangedEvent, AuthStatus, Credential, TokenPayload
from ..telemetry import get_logger, trace_operation
from .errors import ErrorFactory

if TYPE_CHECKING:
    from ..broadcaster import AuthStatusBroadcaster
    from ..http import Transport, TransportResponse
    from ..storage import InstallationId, TokenStore
    from ..tokens import TokenDecoder
    from .endpoints import EndpointResolver

SIGN_IN_PATH = "/AUTH/authWithCustomToken"
REFRESH_PATH = "/AUTH/refreshToken"
SIGN_OUT_PATH = "/AUTH/signOut"


class TokenLifecycle:
    """Owns the account credential and its refresh.

    Concurrent callers that need a refresh share one in-flight request:
    issuing two refreshes with the same refresh token would invalidate the
    token a sibling call is still using. Sign-in and sign-out start a new
    session generation; a refresh begun under an older generation never
    writes its result.
    """

    def __init__(
        self,
        *,
        store: TokenStore,
        transport: Transport,
        resolver: EndpointResolver,
        installation_id: InstallationId,
        decoder: TokenDecoder,
        broadcaster: AuthStatusBroadcaster,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._transport = transport
        self._resolver = resolver
        self._installation_id = installation_id
        self._decoder = decoder
        self._broadcaster = broadcaster
        self._clock = clock
        self._refresh_task: asyncio.Task[Credential] | None = None
        self._generation = 0
        # outcome of the last refresh, when it failed
        self._failure: AuthChangedEvent | None = None
        self._sign_out_hooks: list[Callable[[], Awaitable[None]]] = []
        self._logger = get_logger()

    def add_sign_out_hook(self, hook: Callable[[], Awaitable[None]]) -> None:
        """Register a coroutine run when a rejected refresh ends the session."""
        self._sign_out_hooks.append(hook)

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None

    def safe_now(self, credential: Credential) -> int:
        return credential.safe_now(self._clock())

    async def get_valid_credential(self) -> Credential | None:
        """Return the stored credential, refreshing it first if the access
        token is inside the guard window and the refresh token is not.

        Returns:
            The credential, or None when nobody is signed in.
        """
        credential = await self._load()
        if credential is None:
            return None

        now = self._clock()
        if credential.is_renewable(now) and not credential.is_access_live(now):
            return await self.refresh(stale=credential)

        return credential.model_copy(update={"is_token_valid": credential.is_access_live(now)})

    async def refresh(self, *, stale: Credential | None = None) -> Credential:
        """Exchange the refresh token for a new credential.

        Args:
            stale: Credential the caller found expiring. If storage already
                holds a different one, it was rotated meanwhile and is
                returned without another request.

        Raises:
            TransportError: If the server was unreachable; the credential is kept.
            AuthFailedError: If the refresh was rejected; the session is signed
                out. Also raised when the session changed while the refresh
                was in flight.
        """
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._refresh(stale, self._generation))
            self._refresh_task = task
            task.add_done_callback(self._refresh_finished)
        return await asyncio.shield(task)

    def _refresh_finished(self, task: asyncio.Task[Credential]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh(self, stale: Credential | None, generation: int) -> Credential:
        with trace_operation("refresh_token"):
            try:
                credential = await self._load()
                if credential is None or not credential.is_refreshable:
                    raise AuthFailedError("No refresh token available")
                if stale is not None and credential.access_token != stale.access_token:
                    return credential

                response = await self._auth_request(
                    REFRESH_PATH, {"refreshToken": credential.refresh_token or ""}
                )
                fresh = self._accept(response.body)
            except TransportError as e:
                if generation == self._generation:
                    self._logger.warning(
                        "Token refresh unreachable, keeping credential", error=str(e)
                    )
                    payload = credential.access_token_decoded
                    self._failure = AuthChangedEvent(
                        auth_status=AuthStatus.CONNECTION_FAILED,
                        uid=payload.user_id if payload else None,
                        identity=payload.identity if payload else None,
                        message=e.message,
                    )
                    self._broadcaster.next(self._failure)
                raise
            except Exception as e:
                if generation != self._generation:
                    raise self._superseded() from e
                self._logger.warning("Token refresh rejected, signing out", error=str(e))
                await self._end_session(str(e))
                raise AuthFailedError(f"Token refresh failed: {e}") from e

            if generation != self._generation:
                raise self._superseded()
            await self._store.save(fresh)
            self._failure = None
            self._logger.info("Token refreshed", uid=_uid(fresh))
            return fresh

    def _superseded(self) -> AuthFailedError:
        self._logger.info("Discarding token refresh of an ended session")
        return AuthFailedError("Session changed during token refresh")

    def _new_generation(self) -> None:
        # an in-flight refresh keeps running for its awaiters but cannot save
        self._generation += 1
        self._refresh_task = None
        self._failure = None

    async def _end_session(self, message: str) -> None:
        await self._store.clear()
        self._failure = AuthChangedEvent(auth_status=AuthStatus.AUTH_FAILED, message=message)
        for hook in self._sign_out_hooks:
            await hook()
        self._broadcaster.next(self._failure)

    async def sign_in_with_custom_token(self, token: str) -> Credential:
        """Exchange a custom token for a credential and persist it."""
        with trace_operation("sign_in_with_custom_token"):
            self._new_generation()
            response = await self._auth_request(SIGN_IN_PATH, {"customToken": token})
            credential = self._accept(response.body)
            await self._store.save(credential)
            self._new_generation()
            self._logger.info("Signed in", uid=_uid(credential))
            return credential

    async def sign_out(self) -> None:
        """Notify the server (best effort) and clear the stored credential."""
        with trace_operation("sign_out"):
            self._new_generation()
            credential = await self._store.load()
            if credential is not None:
                try:
                    await self._auth_request(
                        SIGN_OUT_PATH,
                        {"_token": credential.access_token},
                        headers={"Authorization": f"Bearer {credential.access_token}"},
                    )
                except Exception as e:
                    self._logger.warning("Sign-out notification failed", error=str(e))
            await self._store.clear()
            self._new_generation()

    async def current_status(self) -> AuthChangedEvent:
        credential = await self._load()
        return AuthChangedEvent.from_credential(
            credential, now=self._clock(), failure=self._failure
        )

    async def current_user(self) -> TokenPayload | None:
        credential = await self._load()
        return credential.access_token_decoded if credential else None

    async def _load(self) -> Credential | None:
        generation = self._generation
        credential = await self._store.load()
        if credential is None or credential.is_decoded:
            return credential
        try:
            decoded = credential.with_decoded(self._decoder)
        except MalformedTokenError as e:
            self._logger.warning("Discarding undecodable credential", error=str(e))
            if generation == self._generation:
                await self._store.clear()
            return None
        if generation == self._generation:
            await self._store.save(decoded)
        return decoded

    def _accept(self, body: Any) -> Credential:
        try:
            credential = Credential.model_validate(body)
        except ValidationError as e:
            raise MalformedTokenError(f"Unexpected token response: {e}") from e
        credential = credential.with_decoded(self._decoder)
        issued_at = credential.access_token_decoded.iat if credential.access_token_decoded else None
        if issued_at:
            credential = credential.model_copy(
                update={"clock_skew": issued_at - math.floor(self._clock())}
            )
        return credential

    async def _auth_request(
        self,
        path: str,
        params: dict[str, str],
        *,
        headers: dict[str, str] | None = None,
    ) -> TransportResponse:
        request_headers = {"installationId": await self._installation_id.get()}
        request_headers.update(headers or {})
        response = await self._transport.send(
            self._resolver.build_url(path),
            "GET",
            headers=request_headers,
            params=self._resolver.query_params(params),
        )
        if not response.is_success:
            raise ErrorFactory.from_response(response)
        return response


def _uid(credential: Credential) -> str | None:
    return credential.access_token_decoded.user_id if credential.access_token_decoded else None
