"""Unit tests for notification streams."""

from __future__ import annotations

from cloud_objects_sdk.broadcaster import AuthStatusBroadcaster, Broadcaster
from cloud_objects_sdk.models import AuthChangedEvent, AuthStatus


class TestBroadcaster:
    """Tests for Broadcaster."""

    def test_fans_out_in_order(self) -> None:
        stream: Broadcaster[int] = Broadcaster()
        first: list[int] = []
        second: list[int] = []
        stream.subscribe(first.append)
        stream.subscribe(second.append)

        for value in (1, 2, 3):
            stream.next(value)

        assert first == [1, 2, 3]
        assert second == [1, 2, 3]

    def test_unsubscribe(self) -> None:
        stream: Broadcaster[int] = Broadcaster()
        received: list[int] = []
        subscription = stream.subscribe(received.append)

        stream.next(1)
        subscription.unsubscribe()
        subscription.unsubscribe()
        stream.next(2)

        assert received == [1]
        assert not subscription.active
        assert stream.subscriber_count == 0

    def test_failing_subscriber_does_not_stop_delivery(self) -> None:
        stream: Broadcaster[int] = Broadcaster()
        received: list[int] = []

        def broken(value: int) -> None:
            raise RuntimeError("subscriber bug")

        stream.subscribe(broken)
        stream.subscribe(received.append)

        stream.next(1)

        assert received == [1]

    def test_complete_is_terminal(self) -> None:
        stream: Broadcaster[int] = Broadcaster()
        received: list[int] = []
        completions: list[str] = []
        stream.subscribe(received.append, lambda: completions.append("done"))

        stream.complete()
        stream.complete()
        stream.next(1)

        assert received == []
        assert completions == ["done"]
        assert stream.completed
        assert stream.subscriber_count == 0

    def test_subscribe_after_complete(self) -> None:
        stream: Broadcaster[int] = Broadcaster()
        stream.complete()
        completions: list[str] = []

        subscription = stream.subscribe(lambda v: None, lambda: completions.append("done"))

        assert completions == ["done"]
        assert not subscription.active


class TestAuthStatusBroadcaster:
    """Tests for AuthStatusBroadcaster."""

    def test_replays_latest_event(self) -> None:
        broadcaster = AuthStatusBroadcaster()
        signed_out = AuthChangedEvent(auth_status=AuthStatus.SIGNED_OUT)
        signed_in = AuthChangedEvent(auth_status=AuthStatus.SIGNED_IN, uid="u1")
        broadcaster.next(signed_out)
        broadcaster.next(signed_in)
        received: list[AuthChangedEvent] = []

        broadcaster.subscribe(received.append)

        assert received == [signed_in]
        assert broadcaster.latest == signed_in

    def test_no_replay_before_first_event(self) -> None:
        broadcaster = AuthStatusBroadcaster()
        received: list[AuthChangedEvent] = []

        broadcaster.subscribe(received.append)

        assert received == []

    def test_failing_subscriber_on_replay(self) -> None:
        broadcaster = AuthStatusBroadcaster()
        broadcaster.next(AuthChangedEvent(auth_status=AuthStatus.SIGNED_OUT))
        received: list[AuthChangedEvent] = []

        def broken(event: AuthChangedEvent) -> None:
            raise RuntimeError("subscriber bug")

        subscription = broadcaster.subscribe(broken)
        broadcaster.subscribe(received.append)
        signed_in = AuthChangedEvent(auth_status=AuthStatus.SIGNED_IN, uid="u1")
        broadcaster.next(signed_in)

        assert subscription.active
        assert received[-1] == signed_in
