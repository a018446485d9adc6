"""Realtime state channels of cloud objects.

Each cloud object exposes three independently subscribable partitions of
its state. A partition is backed by at most one push-subsystem listener no
matter how many application subscribers attach; updates are fanned out to
all of them. Listeners stay open until ``release_all``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Callable, NamedTuple, Protocol

from .broadcaster import Broadcaster, Subscription
from .errors import NotSignedInError
from .models import RealtimeCredentials, TokenPayload
from .telemetry import get_logger

RESERVED_PREFIX = "__"


class Partition(StrEnum):
    """Realtime state partitions of a cloud object."""

    ROLE = "role"
    USER = "user"
    PUBLIC = "public"


class ChannelKey(NamedTuple):
    class_id: str
    instance_id: str
    partition: Partition


class PushListener(Protocol):
    def close(self) -> None:
        ...


class PushSubsystem(Protocol):
    """Document-change notifications from the realtime backend."""

    def watch(self, path: str, on_change: Callable[[dict[str, Any]], None]) -> PushListener:
        ...

    async def connect(self, credentials: RealtimeCredentials) -> None:
        ...

    async def disconnect(self) -> None:
        ...


def strip_reserved(data: dict[str, Any] | None) -> dict[str, Any]:
    """Drop internal fields from a pushed document."""
    return {k: v for k, v in (data or {}).items() if not k.startswith(RESERVED_PREFIX)}


def document_path(
    project_id: str,
    key: ChannelKey,
    user: TokenPayload | None,
) -> str:
    """Path of the document backing a channel.

    Raises:
        NotSignedInError: For role/user partitions without a signed-in identity.
    """
    instance = f"projects/{project_id}/classes/{key.class_id}/instances/{key.instance_id}"
    if key.partition is Partition.PUBLIC:
        return instance
    if key.partition is Partition.ROLE:
        if user is None or not user.identity:
            raise NotSignedInError("Role state requires a signed-in identity")
        return f"{instance}/roleState/{user.identity}"
    if user is None or not user.user_id:
        raise NotSignedInError("User state requires a signed-in user")
    return f"{instance}/userState/{user.user_id}"


class RealtimeChannel:
    """One state partition of one cloud object."""

    def __init__(
        self,
        manager: RealtimeSubscriptionManager,
        key: ChannelKey,
        user: TokenPayload | None,
    ) -> None:
        self._manager = manager
        self.key = key
        self._user = user
        self.stream: Broadcaster[dict[str, Any]] = Broadcaster(
            f"{key.class_id}/{key.instance_id}/{key.partition.value}"
        )

    @property
    def partition(self) -> Partition:
        return self.key.partition

    def subscribe(
        self,
        on_change: Callable[[dict[str, Any]], None],
        on_complete: Callable[[], None] | None = None,
    ) -> Subscription:
        """Receive every state update of this partition.

        Opens the backing listener on first use.

        Raises:
            NotSignedInError: For role/user partitions without a signed-in identity.
        """
        self._manager.ensure_listener(self)
        return self.stream.subscribe(on_change, on_complete)

    def path(self, project_id: str) -> str:
        return document_path(project_id, self.key, self._user)

    def publish(self, data: dict[str, Any]) -> None:
        self.stream.next(strip_reserved(data))


class ObjectChannels(NamedTuple):
    role: RealtimeChannel
    user: RealtimeChannel
    public: RealtimeChannel

    def get(self, partition: Partition | str) -> RealtimeChannel:
        return getattr(self, Partition(partition).value)


class RealtimeSubscriptionManager:
    """Opens, deduplicates and tears down push listeners."""

    def __init__(self, project_id: str, push: PushSubsystem) -> None:
        self.project_id = project_id
        self._push = push
        self._channels: dict[ChannelKey, RealtimeChannel] = {}
        self._listeners: dict[ChannelKey, PushListener] = {}
        self._logger = get_logger()

    @property
    def open_listeners(self) -> int:
        return len(self._listeners)

    def channels_for(
        self,
        class_id: str,
        instance_id: str,
        user: TokenPayload | None,
    ) -> ObjectChannels:
        """Channels of one cloud object, reusing any already created."""
        channels = []
        for partition in Partition:
            key = ChannelKey(class_id, instance_id, partition)
            channel = self._channels.get(key)
            if channel is None:
                channel = self._channels[key] = RealtimeChannel(self, key, user)
            channels.append(channel)
        return ObjectChannels(*channels)

    def ensure_listener(self, channel: RealtimeChannel) -> None:
        if channel.key in self._listeners or channel.stream.completed:
            return
        path = channel.path(self.project_id)
        self._listeners[channel.key] = self._push.watch(path, channel.publish)
        self._logger.debug("Realtime listener opened", path=path)

    async def connect(self, credentials: RealtimeCredentials | None) -> None:
        """Sign the push backend in; failures leave realtime unavailable."""
        if credentials is None:
            return
        try:
            await self._push.connect(credentials)
        except Exception as e:
            self._logger.warning("Realtime sign-in failed", error=str(e))

    async def release_all(self) -> None:
        """Close every listener once and complete every channel."""
        listeners, self._listeners = self._listeners, {}
        channels, self._channels = self._channels, {}

        for key, listener in listeners.items():
            listener.close()
            self._logger.debug(
                "Realtime listener closed",
                class_id=key.class_id,
                instance_id=key.instance_id,
                partition=key.partition.value,
            )
        for channel in channels.values():
            channel.stream.complete()
        await self._push.disconnect()


class _MemoryListener:
    def __init__(self, push: MemoryPushSubsystem, path: str, on_change: Callable[[dict[str, Any]], None]) -> None:
        self._push = push
        self.path = path
        self.on_change = on_change
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._push.listeners.remove(self)


class MemoryPushSubsystem:
    """In-process push backend; ``publish`` delivers to watchers of a path."""

    def __init__(self) -> None:
        self.listeners: list[_MemoryListener] = []
        self.credentials: RealtimeCredentials | None = None

    def watch(self, path: str, on_change: Callable[[dict[str, Any]], None]) -> _MemoryListener:
        listener = _MemoryListener(self, path, on_change)
        self.listeners.append(listener)
        return listener

    def publish(self, path: str, data: dict[str, Any]) -> None:
        for listener in list(self.listeners):
            if listener.path == path:
                listener.on_change(dict(data))

    async def connect(self, credentials: RealtimeCredentials) -> None:
        self.credentials = credentials

    async def disconnect(self) -> None:
        self.credentials = None
