"""Cloud object handles and the per-client object registry."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from .core.endpoints import Operation
from .models import (
    CallResponse,
    CloudObjectMethod,
    CloudObjectRequest,
    CloudObjectState,
    RetryPolicy,
)
from .telemetry import get_logger

if TYPE_CHECKING:
    from .config import RetryConfig
    from .core.endpoints import EndpointResolver
    from .core.http_executor import RetryableCaller
    from .realtime import ObjectChannels, RealtimeSubscriptionManager


class CloudObject:
    """Handle of one server-resident object instance."""

    def __init__(
        self,
        *,
        class_id: str,
        instance_id: str,
        state: ObjectChannels,
        resolver: EndpointResolver,
        caller: RetryableCaller,
        retry: RetryConfig,
        methods: list[CloudObjectMethod] | None = None,
        is_new_instance: bool = False,
        response: Any = None,
    ) -> None:
        self.class_id = class_id
        self.instance_id = instance_id
        self.state = state
        self.methods = methods or []
        self.is_new_instance = is_new_instance
        self.response = response
        self._resolver = resolver
        self._caller = caller
        self._retry = retry
        self._teardowns: list[Callable[[], None]] = []

    def __repr__(self) -> str:
        return f"CloudObject(class_id={self.class_id!r}, instance_id={self.instance_id!r})"

    @property
    def key(self) -> tuple[str, str]:
        return (self.class_id, self.instance_id)

    def add_teardown(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` when the object is released."""
        self._teardowns.append(callback)

    def teardown(self) -> None:
        callbacks, self._teardowns = self._teardowns, []
        for callback in callbacks:
            callback()

    async def call(
        self,
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
        """Call an instance method.

        Args:
            method: Method name.
            body: JSON payload; moved to the query string for GET.
            http_method: HTTP method.
            headers: Extra headers.
            query_params: Extra query parameters.
            path_params: Path suffix appended after the instance id.
            base64_encode: Whether a GET payload goes into the query string.
            retry: Policy replacing the configured default for this call.

        Returns:
            Call response.

        Raises:
            RemoteError: On a non-2xx response once retries are exhausted.
        """
        request = CloudObjectRequest(
            class_id=self.class_id,
            instance_id=self.instance_id,
            method=method,
            body=body,
            http_method=http_method,
            headers=headers or {},
            query_params=query_params or {},
            path_params=path_params,
            base64_encode=base64_encode,
        )
        policy = retry if retry is not None else self._retry.to_policy()
        return await self._caller.execute(
            self._resolver.prepare(Operation.CALL, request), policy
        )

    async def get_state(
        self,
        *,
        headers: dict[str, str] | None = None,
        query_params: dict[str, str] | None = None,
    ) -> CloudObjectState:
        """Fetch the current state snapshot."""
        request = CloudObjectRequest(
            class_id=self.class_id,
            instance_id=self.instance_id,
            http_method="GET",
            headers=headers or {},
            query_params=query_params or {},
        )
        response = await self._caller.execute(
            self._resolver.prepare(Operation.STATE, request)
        )
        return CloudObjectState.model_validate(response.data or {})

    async def list_instances(
        self,
        *,
        headers: dict[str, str] | None = None,
        query_params: dict[str, str] | None = None,
    ) -> list[str]:
        """Ids of the instances of this object's class."""
        request = CloudObjectRequest(
            class_id=self.class_id,
            http_method="GET",
            headers=headers or {},
            query_params=query_params or {},
        )
        response = await self._caller.execute(
            self._resolver.prepare(Operation.LIST, request)
        )
        data = response.data or {}
        return list(data.get("instanceIds", []))


class ObjectRegistry:
    """At most one live handle per (class id, instance id)."""

    def __init__(self, realtime: RealtimeSubscriptionManager) -> None:
        self._realtime = realtime
        self._objects: dict[tuple[str, str], CloudObject] = {}
        self._logger = get_logger()

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._objects

    def get(self, class_id: str, instance_id: str) -> CloudObject | None:
        return self._objects.get((class_id, instance_id))

    def find_or_create(self, cloud_object: CloudObject) -> CloudObject:
        """Register ``cloud_object`` unless a handle for its key exists.

        Returns:
            The registered handle, which may be an earlier one.
        """
        existing = self._objects.get(cloud_object.key)
        if existing is not None:
            return existing
        self._objects[cloud_object.key] = cloud_object
        return cloud_object

    async def release_all(self) -> None:
        """Close listeners, complete channels, run teardowns and forget all handles."""
        objects, self._objects = self._objects, {}
        await self._realtime.release_all()
        for cloud_object in objects.values():
            cloud_object.teardown()
        if objects:
            self._logger.info("Released cloud objects", count=len(objects))
