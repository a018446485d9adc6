"""
Shared test fixtures for Cloud Objects SDK tests.

Provides configuration, in-memory collaborators and a fully wired
client for tests.
"""

from __future__ import annotations

import pytest

from cloud_objects_sdk.broadcaster import AuthStatusBroadcaster
from cloud_objects_sdk.client import CloudObjectsClient
from cloud_objects_sdk.config import ClientConfig, RetryConfig, TelemetryConfig
from cloud_objects_sdk.core.endpoints import EndpointResolver
from cloud_objects_sdk.core.token_lifecycle import TokenLifecycle
from cloud_objects_sdk.realtime import MemoryPushSubsystem
from cloud_objects_sdk.storage import InstallationId, MemoryStorage, TokenStore
from cloud_objects_sdk.tokens import JWTDecoder

from helpers import FakeClock, FakeTransport, RecordingSleep


@pytest.fixture
def config() -> ClientConfig:
    """Provide a basic SDK configuration for testing."""
    return ClientConfig(
        project_id="proj1",
        retry=RetryConfig(delay=0.1, count=3, rate=2.0),
        telemetry=TelemetryConfig(enabled=False),
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def push() -> MemoryPushSubsystem:
    return MemoryPushSubsystem()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def broadcaster() -> AuthStatusBroadcaster:
    return AuthStatusBroadcaster()


@pytest.fixture
def token_store(storage: MemoryStorage, config: ClientConfig) -> TokenStore:
    return TokenStore(storage, config.token_storage_key)


@pytest.fixture
def lifecycle(
    config: ClientConfig,
    storage: MemoryStorage,
    token_store: TokenStore,
    transport: FakeTransport,
    broadcaster: AuthStatusBroadcaster,
    clock: FakeClock,
) -> TokenLifecycle:
    """Provide a token lifecycle wired to in-memory collaborators."""
    return TokenLifecycle(
        store=token_store,
        transport=transport,
        resolver=EndpointResolver(config),
        installation_id=InstallationId(storage),
        decoder=JWTDecoder(),
        broadcaster=broadcaster,
        clock=clock,
    )


@pytest.fixture
def client(
    config: ClientConfig,
    storage: MemoryStorage,
    push: MemoryPushSubsystem,
    transport: FakeTransport,
    clock: FakeClock,
    sleep: RecordingSleep,
) -> CloudObjectsClient:
    """Provide a client wired to in-memory collaborators."""
    return CloudObjectsClient(
        config,
        storage=storage,
        push=push,
        transport=transport,
        clock=clock,
        sleep=sleep,
    )
