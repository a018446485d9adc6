"""Cloud Objects SDK client.

Ties the session, request and realtime layers together behind one
asynchronous entry point per account.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Self

from .broadcaster import AuthStatusBroadcaster, Subscription
from .cloud_object import CloudObject, ObjectRegistry
from .config import ClientConfig
from .core.endpoints import EndpointResolver, Operation
from .core.http_executor import RetryableCaller
from .core.token_lifecycle import TokenLifecycle
from .errors import AuthFailedError, NotInitializedError, RemoteError, TransportError
from .http import HttpxTransport, Transport
from .models import (
    AuthChangedEvent,
    AuthStatus,
    CallResponse,
    CloudObjectMethod,
    CloudObjectRequest,
    ObjectKey,
    RetryPolicy,
    TokenPayload,
)
from .realtime import MemoryPushSubsystem, PushSubsystem, RealtimeSubscriptionManager
from .storage import InstallationId, KeyValueStorage, MemoryStorage, TokenStore
from .telemetry import configure_telemetry, get_logger, traced_async
from .tokens import JWTDecoder, TokenDecoder


class CloudObjectsClient:
    """Asynchronous client for one project account."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        storage: KeyValueStorage | None = None,
        push: PushSubsystem | None = None,
        transport: Transport | None = None,
        decoder: TokenDecoder | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize client.

        Args:
            config: SDK configuration.
            storage: Durable storage for the credential and installation id.
            push: Realtime backend.
            transport: HTTP transport (httpx by default).
            decoder: Token decoder (unverified JWT by default).
            clock: Wall-clock source in epoch seconds.
            sleep: Non-blocking wait used between retries.
        """
        self.config = config
        configure_telemetry(config.telemetry)
        self._logger = get_logger().bind(project_id=config.project_id)

        storage = storage if storage is not None else MemoryStorage()
        self._transport = transport if transport is not None else HttpxTransport.from_config(config)
        self._installation_id = InstallationId(storage)
        self._resolver = EndpointResolver(config)
        self._broadcaster = AuthStatusBroadcaster()
        self._lifecycle = TokenLifecycle(
            store=TokenStore(storage, config.token_storage_key),
            transport=self._transport,
            resolver=self._resolver,
            installation_id=self._installation_id,
            decoder=decoder if decoder is not None else JWTDecoder(),
            broadcaster=self._broadcaster,
            clock=clock,
        )
        self._caller = RetryableCaller(
            self._transport,
            self._lifecycle,
            self._installation_id,
            sleep=sleep,
        )
        self._realtime = RealtimeSubscriptionManager(
            config.project_id,
            push if push is not None else MemoryPushSubsystem(),
        )
        self._registry = ObjectRegistry(self._realtime)
        self._lifecycle.add_sign_out_hook(self._registry.release_all)
        self._initialized = False

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release all objects and close the transport."""
        await self._registry.release_all()
        await self._transport.aclose()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def auth_status(self) -> AuthStatusBroadcaster:
        """Session transitions; subscribers receive the latest event first."""
        return self._broadcaster

    @property
    def registry(self) -> ObjectRegistry:
        return self._registry

    @traced_async("initialize")
    async def initialize(
        self,
        on_status: Callable[[AuthChangedEvent], None] | None = None,
    ) -> Subscription | None:
        """Bootstrap the session from stored credentials.

        Validates (and if needed refreshes) the stored credential, signs the
        realtime backend in and announces the current auth status.

        Args:
            on_status: Optional auth status subscriber, attached before the
                first announcement.

        Returns:
            The subscription of ``on_status``, if given.

        Raises:
            TransportError: If a needed refresh could not reach the server;
                ``on_status`` is detached again.
        """
        subscription = self._broadcaster.subscribe(on_status) if on_status else None
        self._initialized = True

        try:
            credential = await self._lifecycle.get_valid_credential()
        except AuthFailedError:
            # the rejected session was already ended and announced
            return subscription
        except TransportError:
            if subscription is not None:
                subscription.unsubscribe()
            raise
        if credential is not None:
            await self._realtime.connect(credential.realtime)
        self._broadcaster.next(await self._lifecycle.current_status())
        return subscription

    async def get_auth_status(self) -> AuthChangedEvent:
        """Session state derived from the stored credential."""
        return await self._lifecycle.current_status()

    async def get_current_user(self) -> TokenPayload | None:
        """Claims of the current access token."""
        return await self._lifecycle.current_user()

    @traced_async("authenticate_with_custom_token")
    async def authenticate_with_custom_token(self, token: str) -> AuthChangedEvent:
        """Sign in with a custom token issued by the application backend.

        Objects resolved under a previous identity are released first.
        """
        await self._registry.release_all()
        credential = await self._lifecycle.sign_in_with_custom_token(token)
        await self._realtime.connect(credential.realtime)

        payload = credential.access_token_decoded
        event = AuthChangedEvent(
            auth_status=AuthStatus.SIGNED_IN,
            uid=payload.user_id if payload else None,
            identity=payload.identity if payload else None,
        )
        self._broadcaster.next(event)
        return event

    @traced_async("sign_out")
    async def sign_out(self) -> None:
        """Sign out locally; the server is notified on a best-effort basis."""
        try:
            await self._lifecycle.sign_out()
        finally:
            await self._registry.release_all()
            self._broadcaster.next(AuthChangedEvent(auth_status=AuthStatus.SIGNED_OUT))

    @traced_async("get_cloud_object", record=("class_id", "instance_id", "use_local"))
    async def get_cloud_object(
        self,
        class_id: str,
        *,
        instance_id: str | None = None,
        key: ObjectKey | None = None,
        use_local: bool = False,
        body: Any = None,
        http_method: str = "POST",
        headers: dict[str, str] | None = None,
        query_params: dict[str, str] | None = None,
    ) -> CloudObject:
        """Resolve a cloud object handle.

        Without an instance id the server resolves one (creating the
        instance, or looking it up by ``key``). Resolving a pair that is
        already registered returns the existing handle.

        Args:
            class_id: Cloud object class.
            instance_id: Existing instance id.
            key: Named lookup key used instead of an instance id.
            use_local: Skip server resolution; requires ``instance_id``.
            body: Payload passed to the instance constructor.
            http_method: HTTP method of the resolution request.
            headers: Extra headers of the resolution request.
            query_params: Extra query parameters of the resolution request.

        Returns:
            The registered handle.

        Raises:
            NotInitializedError: If ``initialize`` was not awaited.
            RemoteError: If the server answered without an instance id.
        """
        self._require_initialized()

        resolved: dict[str, Any] = {}
        if not instance_id:
            if use_local:
                msg = "use_local requires an instance_id"
                raise ValueError(msg)
            request = CloudObjectRequest(
                class_id=class_id,
                key=key,
                body=body,
                http_method=http_method,
                headers=headers or {},
                query_params=query_params or {},
            )
            response = await self._caller.execute(
                self._resolver.prepare(Operation.INSTANCE, request)
            )
            resolved = response.data if isinstance(response.data, dict) else {}
            instance_id = resolved.get("instanceId")
            if not instance_id or not isinstance(instance_id, str):
                raise RemoteError(
                    "Instance response carries no instanceId",
                    status_code=response.status_code,
                    body=response.data,
                )

        existing = self._registry.get(class_id, instance_id)
        if existing is not None:
            return existing

        user = await self._lifecycle.current_user()
        cloud_object = CloudObject(
            class_id=class_id,
            instance_id=instance_id,
            state=self._realtime.channels_for(class_id, instance_id, user),
            resolver=self._resolver,
            caller=self._caller,
            retry=self.config.retry,
            methods=[CloudObjectMethod.model_validate(m) for m in resolved.get("methods", [])],
            is_new_instance=bool(resolved.get("newInstance", False)),
            response=resolved.get("response"),
        )
        registered = self._registry.find_or_create(cloud_object)
        if registered is cloud_object:
            self._logger.debug("Cloud object registered", class_id=class_id, instance_id=instance_id)
        return registered

    @traced_async("make_static_call", record=("class_id", "method", "http_method"))
    async def make_static_call(
        self,
        class_id: str,
        method: str,
        *,
        body: Any = None,
        http_method: str = "POST",
        headers: dict[str, str] | None = None,
        query_params: dict[str, str] | None = None,
        path_params: str | None = None,
        base64_encode: bool = True,
        retry: RetryPolicy | None = None,
    ) -> CallResponse:
        """Call a class-level method that needs no instance.

        Raises:
            NotInitializedError: If ``initialize`` was not awaited.
            RemoteError: On a non-2xx response once retries are exhausted.
        """
        self._require_initialized()
        request = CloudObjectRequest(
            class_id=class_id,
            method=method,
            body=body,
            http_method=http_method,
            headers=headers or {},
            query_params=query_params or {},
            path_params=path_params,
            base64_encode=base64_encode,
        )
        policy = retry if retry is not None else self.config.retry.to_policy()
        return await self._caller.execute(
            self._resolver.prepare(Operation.STATIC_CALL, request), policy
        )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError()


class ClientRegistry:
    """One client per project account, held by the application."""

    def __init__(self) -> None:
        self._clients: dict[str, CloudObjectsClient] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def get(self, project_id: str) -> CloudObjectsClient | None:
        return self._clients.get(project_id)

    def get_or_create(self, config: ClientConfig, **kwargs: Any) -> CloudObjectsClient:
        """Return the account's client, creating it with ``kwargs`` on first use."""
        client = self._clients.get(config.project_id)
        if client is None:
            client = self._clients[config.project_id] = CloudObjectsClient(config, **kwargs)
        return client

    async def remove(self, project_id: str) -> None:
        client = self._clients.pop(project_id, None)
        if client is not None:
            await client.close()

    async def close_all(self) -> None:
        clients, self._clients = self._clients, {}
        for client in clients.values():
            await client.close()
