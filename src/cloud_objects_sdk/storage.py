"""Persistent key-value storage for credentials and the installation id."""

from __future__ import annotations

import asyncio
import uuid
from typing import Protocol

from pydantic import ValidationError

from .models import Credential
from .telemetry import get_logger

INSTALLATION_ID_KEY = "CLOUD_OBJECTS_INSTALLATION_ID"


class KeyValueStorage(Protocol):
    """Asynchronous string storage keyed by opaque string keys."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...


class MemoryStorage:
    """In-memory storage, suitable for server-side processes and testing."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._items.get(key)

    async def set(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._items


class TokenStore:
    """Persists the account's current credential under one storage key."""

    def __init__(self, storage: KeyValueStorage, key: str) -> None:
        self._storage = storage
        self.key = key
        self._logger = get_logger()

    async def load(self) -> Credential | None:
        """Load the stored credential; unreadable data counts as absent."""
        raw = await self._storage.get(self.key)
        if not raw:
            return None
        try:
            return Credential.model_validate_json(raw)
        except ValidationError as e:
            self._logger.warning("Discarding unreadable credential", key=self.key, error=str(e))
            return None

    async def save(self, credential: Credential) -> None:
        await self._storage.set(self.key, credential.to_storage())

    async def clear(self) -> None:
        await self._storage.remove(self.key)


class InstallationId:
    """Stable per-installation identifier, created on first use.

    Concurrent first calls share one find-or-create step, so only one
    identifier is ever generated.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage
        self._value: str | None = None
        self._pending: asyncio.Task[str] | None = None

    async def get(self) -> str:
        if self._value is not None:
            return self._value
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._find_or_create())
            self._pending.add_done_callback(self._finished)
        return await asyncio.shield(self._pending)

    def _finished(self, task: asyncio.Task[str]) -> None:
        if self._pending is task:
            self._pending = None

    async def _find_or_create(self) -> str:
        stored = await self._storage.get(INSTALLATION_ID_KEY)
        if not stored:
            stored = str(uuid.uuid4())
            await self._storage.set(INSTALLATION_ID_KEY, stored)
        self._value = stored
        return stored
