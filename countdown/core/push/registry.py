"""Subscription registry: one live Web Push subscription per owner."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Protocol

from sqlmodel.ext.asyncio.session import AsyncSession

from countdown.models.push_subscription import PushSubscription
from countdown.repos.push_subscription import PushSubscriptionRepository

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class SubscriptionRegistry(Protocol):
    async def upsert(self, owner_id: str, subscription: PushSubscription) -> PushSubscription: ...

    async def get(self, owner_id: str) -> PushSubscription | None: ...

    async def remove(self, owner_id: str, endpoint: str | None = None) -> bool:
        """Drop the owner's subscription; with *endpoint*, only while it is still that one."""
        ...

    async def list_all(self) -> list[tuple[str, PushSubscription]]: ...


class InMemorySubscriptionRegistry:
    """Process-local registry. Reads are lock-free, writes are serialized."""

    def __init__(self) -> None:
        self._subs: dict[str, PushSubscription] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, owner_id: str, subscription: PushSubscription) -> PushSubscription:
        subscription.owner_id = owner_id
        async with self._lock:
            for other, sub in list(self._subs.items()):
                if other != owner_id and sub.endpoint == subscription.endpoint:
                    del self._subs[other]
            self._subs[owner_id] = subscription
        return subscription

    async def get(self, owner_id: str) -> PushSubscription | None:
        return self._subs.get(owner_id)

    async def remove(self, owner_id: str, endpoint: str | None = None) -> bool:
        async with self._lock:
            current = self._subs.get(owner_id)
            if current is None or (endpoint is not None and current.endpoint != endpoint):
                return False
            del self._subs[owner_id]
            return True

    async def list_all(self) -> list[tuple[str, PushSubscription]]:
        return list(self._subs.items())


class DatabaseSubscriptionRegistry:
    """Registry backed by the ``push_subscription`` table.

    Each call opens its own short session so concurrent owners never share
    a transaction; the unique owner index serializes competing writes.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def upsert(self, owner_id: str, subscription: PushSubscription) -> PushSubscription:
        subscription.owner_id = owner_id
        async with self._session_factory() as db:
            saved = await PushSubscriptionRepository(db).upsert(subscription)
            await db.commit()
            return saved

    async def get(self, owner_id: str) -> PushSubscription | None:
        async with self._session_factory() as db:
            return await PushSubscriptionRepository(db).get_by_owner(owner_id)

    async def remove(self, owner_id: str, endpoint: str | None = None) -> bool:
        async with self._session_factory() as db:
            removed = await PushSubscriptionRepository(db).delete_by_owner(owner_id, endpoint=endpoint)
            await db.commit()
        if removed:
            logger.info("Push subscription removed for owner %s", owner_id)
        return removed

    async def list_all(self) -> list[tuple[str, PushSubscription]]:
        async with self._session_factory() as db:
            subs = await PushSubscriptionRepository(db).list_all()
        return [(sub.owner_id, sub) for sub in subs]
