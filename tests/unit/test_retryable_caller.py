"""Unit tests for RetryableCaller."""

from __future__ import annotations

import pytest

from cloud_objects_sdk.config import ClientConfig
from cloud_objects_sdk.core.endpoints import EndpointResolver, Operation, PreparedRequest
from cloud_objects_sdk.core.http_executor import NO_RETRY, RetryableCaller, should_retry
from cloud_objects_sdk.core.token_lifecycle import REFRESH_PATH, TokenLifecycle
from cloud_objects_sdk.errors import RemoteError, TransportError
from cloud_objects_sdk.models import CloudObjectRequest, Credential, RetryPolicy
from cloud_objects_sdk.storage import InstallationId, MemoryStorage, TokenStore

from helpers import FakeTransport, RecordingSleep, respond, token_body

CALL_PATH = "/CALL/Order/pay/o-1"


@pytest.fixture
def caller(
    transport: FakeTransport,
    lifecycle: TokenLifecycle,
    storage: MemoryStorage,
    sleep: RecordingSleep,
) -> RetryableCaller:
    return RetryableCaller(transport, lifecycle, InstallationId(storage), sleep=sleep)


@pytest.fixture
def request_(config: ClientConfig) -> PreparedRequest:
    return EndpointResolver(config).prepare(
        Operation.CALL,
        CloudObjectRequest(class_id="Order", instance_id="o-1", method="pay", body={"amount": 3}),
    )


class TestShouldRetry:
    """Tests for the retry decision."""

    def test_only_overloaded_status(self) -> None:
        policy = RetryPolicy(delay=1, count=1, rate=1)

        assert should_retry(respond(570), policy)
        assert not should_retry(respond(500), policy)
        assert not should_retry(respond(429), policy)

    def test_exhausted_policy(self) -> None:
        assert not should_retry(respond(570), NO_RETRY)


class TestExecute:
    """Tests for request execution."""

    @pytest.mark.asyncio
    async def test_success(
        self, caller: RetryableCaller, transport: FakeTransport, request_: PreparedRequest
    ) -> None:
        transport.on(CALL_PATH, respond(200, {"ok": True}, etag="v1"))

        response = await caller.execute(request_)

        assert response.status_code == 200
        assert response.data == {"ok": True}
        assert response.headers == {"etag": "v1"}
        sent = transport.requests[0]
        assert sent.body == {"amount": 3}
        assert sent.params["__culture"] == "en-us"
        assert sent.headers["installationId"]
        assert "Authorization" not in sent.headers

    @pytest.mark.asyncio
    async def test_bearer_token_attached(
        self,
        caller: RetryableCaller,
        transport: FakeTransport,
        token_store: TokenStore,
        request_: PreparedRequest,
    ) -> None:
        credential = Credential.model_validate(token_body())
        await token_store.save(credential)
        transport.on(CALL_PATH, respond(200))

        await caller.execute(request_)

        assert transport.requests[0].headers["Authorization"] == f"Bearer {credential.access_token}"

    @pytest.mark.asyncio
    async def test_retries_with_growing_delay(
        self,
        caller: RetryableCaller,
        transport: FakeTransport,
        sleep: RecordingSleep,
        request_: PreparedRequest,
    ) -> None:
        transport.on(CALL_PATH, respond(570), respond(570), respond(200, "done"))

        response = await caller.execute(request_, RetryPolicy(delay=0.1, count=3, rate=2.0))

        assert response.data == "done"
        assert len(transport.requests) == 3
        assert sleep.delays == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_gives_up_after_count_retries(
        self,
        caller: RetryableCaller,
        transport: FakeTransport,
        sleep: RecordingSleep,
        request_: PreparedRequest,
    ) -> None:
        transport.on(CALL_PATH, respond(570, {"message": "busy"}))

        with pytest.raises(RemoteError) as exc_info:
            await caller.execute(request_, RetryPolicy(delay=0.1, count=2, rate=3.0))

        assert exc_info.value.status_code == 570
        assert exc_info.value.body == {"message": "busy"}
        assert len(transport.requests) == 3
        assert sleep.delays == pytest.approx([0.1, 0.3])

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(
        self,
        caller: RetryableCaller,
        transport: FakeTransport,
        sleep: RecordingSleep,
        request_: PreparedRequest,
    ) -> None:
        transport.on(CALL_PATH, respond(500, {"message": "boom"}))

        with pytest.raises(RemoteError) as exc_info:
            await caller.execute(request_, RetryPolicy(delay=0.1, count=3, rate=2.0))

        assert exc_info.value.status_code == 500
        assert len(transport.requests) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_transport_errors_are_not_retried(
        self,
        caller: RetryableCaller,
        transport: FakeTransport,
        request_: PreparedRequest,
    ) -> None:
        transport.on(CALL_PATH, TransportError("offline"))

        with pytest.raises(TransportError):
            await caller.execute(request_, RetryPolicy(delay=0.1, count=3, rate=2.0))

        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_expiring_token_refreshed_before_call(
        self,
        caller: RetryableCaller,
        transport: FakeTransport,
        token_store: TokenStore,
        request_: PreparedRequest,
    ) -> None:
        await token_store.save(Credential.model_validate(token_body(access_ttl=5)))
        fresh = token_body(serial=1)
        transport.on(REFRESH_PATH, respond(200, fresh))
        transport.on(CALL_PATH, respond(200))

        await caller.execute(request_)

        assert [r.path.rsplit("/", 1)[-1] for r in transport.requests] == ["refreshToken", "o-1"]
        assert transport.requests[1].headers["Authorization"] == f"Bearer {fresh['accessToken']}"
