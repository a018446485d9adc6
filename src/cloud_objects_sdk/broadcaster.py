"""Single-producer, multi-consumer notification streams."""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from .models import AuthChangedEvent
from .telemetry import get_logger

T = TypeVar("T")


class Subscription:
    """Handle returned by ``subscribe``; cancels delivery when unsubscribed."""

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel: Callable[[], None] | None = cancel

    @property
    def active(self) -> bool:
        return self._cancel is not None

    def unsubscribe(self) -> None:
        if self._cancel is not None:
            cancel, self._cancel = self._cancel, None
            cancel()


class _Subscriber(Generic[T]):
    __slots__ = ("on_next", "on_complete")

    def __init__(
        self,
        on_next: Callable[[T], None],
        on_complete: Callable[[], None] | None,
    ) -> None:
        self.on_next = on_next
        self.on_complete = on_complete


class Broadcaster(Generic[T]):
    """Fans every value out to all current subscribers, in emission order.

    ``complete`` is terminal: subscribers are told no further values will
    arrive and are dropped. A subscriber whose callback raises is logged and
    skipped; delivery to the others continues.
    """

    def __init__(self, name: str = "broadcaster") -> None:
        self.name = name
        self._subscribers: list[_Subscriber[T]] = []
        self._completed = False
        self._logger = get_logger()

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(
        self,
        on_next: Callable[[T], None],
        on_complete: Callable[[], None] | None = None,
    ) -> Subscription:
        subscriber = _Subscriber(on_next, on_complete)
        if self._completed:
            self._deliver_complete(subscriber)
            closed = Subscription(lambda: None)
            closed.unsubscribe()
            return closed

        self._subscribers.append(subscriber)

        def cancel() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return Subscription(cancel)

    def next(self, value: T) -> None:
        if self._completed:
            return
        for subscriber in list(self._subscribers):
            self._deliver_next(subscriber, value)

    def complete(self) -> None:
        if self._completed:
            return
        self._completed = True
        subscribers, self._subscribers = self._subscribers, []
        for subscriber in subscribers:
            self._deliver_complete(subscriber)

    def _deliver_next(self, subscriber: _Subscriber[T], value: T) -> None:
        try:
            subscriber.on_next(value)
        except Exception as e:
            self._logger.error("Subscriber failed", stream=self.name, error=str(e))

    def _deliver_complete(self, subscriber: _Subscriber[T]) -> None:
        if subscriber.on_complete is None:
            return
        try:
            subscriber.on_complete()
        except Exception as e:
            self._logger.error("Subscriber failed on complete", stream=self.name, error=str(e))


class AuthStatusBroadcaster(Broadcaster[AuthChangedEvent]):
    """Session transitions; new subscribers first receive the latest event."""

    def __init__(self) -> None:
        super().__init__("auth_status")
        self._latest: AuthChangedEvent | None = None

    @property
    def latest(self) -> AuthChangedEvent | None:
        return self._latest

    def subscribe(
        self,
        on_next: Callable[[AuthChangedEvent], None],
        on_complete: Callable[[], None] | None = None,
    ) -> Subscription:
        subscription = super().subscribe(on_next, on_complete)
        if self._latest is not None and subscription.active:
            self._deliver_next(_Subscriber(on_next, on_complete), self._latest)
        return subscription

    def next(self, value: AuthChangedEvent) -> None:
        self._latest = value
        self._logger.info(
            "Auth status changed",
            auth_status=value.auth_status.value,
            uid=value.uid,
        )
        super().next(value)
