"""TriggerFiring stores.

A firing key ``(trigger_id, owner_id, civil_date)`` is *claimed* before the
delivery attempt and its outcome recorded afterwards.  ``claim`` is the only
operation that decides who delivers, so it must be atomic in every backend:
a lock in memory, a unique constraint in SQL, ``SET NX`` in Redis.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from countdown.core.exceptions import FiringStoreError
from countdown.core.push.registry import SessionFactory
from countdown.models.trigger_firing import FiringOutcome
from countdown.repos.trigger_firing import TriggerFiringRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FiringKey:
    trigger_id: str
    owner_id: str
    civil_date: date

    def __str__(self) -> str:
        return f"{self.trigger_id}:{self.owner_id}:{self.civil_date.isoformat()}"


class FiringStore(Protocol):
    async def exists(self, key: FiringKey) -> bool: ...

    async def claim(self, key: FiringKey) -> bool: ...

    async def record(self, key: FiringKey, outcome: FiringOutcome) -> None: ...


class InMemoryFiringStore:
    def __init__(self) -> None:
        self._firings: dict[FiringKey, FiringOutcome] = {}
        self._lock = asyncio.Lock()

    async def exists(self, key: FiringKey) -> bool:
        return key in self._firings

    async def claim(self, key: FiringKey) -> bool:
        async with self._lock:
            if key in self._firings:
                return False
            self._firings[key] = FiringOutcome.PENDING
            return True

    async def record(self, key: FiringKey, outcome: FiringOutcome) -> None:
        async with self._lock:
            self._firings[key] = outcome

    def outcome(self, key: FiringKey) -> FiringOutcome | None:
        return self._firings.get(key)

    def __len__(self) -> int:
        return len(self._firings)


class DatabaseFiringStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def exists(self, key: FiringKey) -> bool:
        try:
            async with self._session_factory() as db:
                return await TriggerFiringRepository(db).exists(key.trigger_id, key.owner_id, key.civil_date)
        except SQLAlchemyError as e:
            raise FiringStoreError(f"Failed to read firing {key}", cause=e) from e

    async def claim(self, key: FiringKey) -> bool:
        try:
            async with self._session_factory() as db:
                return await TriggerFiringRepository(db).claim(key.trigger_id, key.owner_id, key.civil_date)
        except SQLAlchemyError as e:
            raise FiringStoreError(f"Failed to claim firing {key}", cause=e) from e

    async def record(self, key: FiringKey, outcome: FiringOutcome) -> None:
        try:
            async with self._session_factory() as db:
                await TriggerFiringRepository(db).set_outcome(key.trigger_id, key.owner_id, key.civil_date, outcome)
        except SQLAlchemyError as e:
            raise FiringStoreError(f"Failed to record firing {key}", cause=e) from e


class RedisFiringStore:
    """Firing keys in Redis; they expire after *retention* since a civil date never recurs."""

    def __init__(
        self,
        client: redis.Redis,
        retention: timedelta = timedelta(days=3),
        prefix: str = "countdown:firing",
    ) -> None:
        self._client = client
        self._ttl = int(retention.total_seconds())
        self._prefix = prefix

    def _name(self, key: FiringKey) -> str:
        return f"{self._prefix}:{key}"

    async def exists(self, key: FiringKey) -> bool:
        try:
            return bool(await self._client.exists(self._name(key)))
        except RedisError as e:
            raise FiringStoreError(f"Failed to read firing {key}", cause=e) from e

    async def claim(self, key: FiringKey) -> bool:
        try:
            acquired = await self._client.set(self._name(key), FiringOutcome.PENDING.value, nx=True, ex=self._ttl)
        except RedisError as e:
            raise FiringStoreError(f"Failed to claim firing {key}", cause=e) from e
        return bool(acquired)

    async def record(self, key: FiringKey, outcome: FiringOutcome) -> None:
        try:
            await self._client.set(self._name(key), outcome.value, xx=True, keepttl=True)
        except RedisError as e:
            raise FiringStoreError(f"Failed to record firing {key}", cause=e) from e


class LayeredFiringStore:
    """In-memory cache in front of a persistent store.

    Keys seen during this run are answered locally; the persistent store
    still arbitrates every claim so restarts and peers stay consistent.
    """

    def __init__(self, persistent: FiringStore) -> None:
        self._persistent = persistent
        self._seen: set[FiringKey] = set()

    async def exists(self, key: FiringKey) -> bool:
        if key in self._seen:
            return True
        if await self._persistent.exists(key):
            self._seen.add(key)
            return True
        return False

    async def claim(self, key: FiringKey) -> bool:
        if key in self._seen:
            return False
        claimed = await self._persistent.claim(key)
        # Either we own it now or someone else does; both mean "fired".
        self._seen.add(key)
        return claimed

    async def record(self, key: FiringKey, outcome: FiringOutcome) -> None:
        self._seen.add(key)
        await self._persistent.record(key, outcome)
