import asyncio

import pytest

from countdown.core.push.registry import InMemorySubscriptionRegistry
from tests.factories.push import make_subscription


class TestInMemorySubscriptionRegistry:
    @pytest.mark.asyncio
    async def test_upsert_replaces_previous_subscription(self) -> None:
        registry = InMemorySubscriptionRegistry()
        await registry.upsert("alice", make_subscription(endpoint="https://push.example.com/old"))
        await registry.upsert("alice", make_subscription(endpoint="https://push.example.com/new"))

        sub = await registry.get("alice")
        assert sub is not None
        assert sub.endpoint == "https://push.example.com/new"
        assert len(await registry.list_all()) == 1

    @pytest.mark.asyncio
    async def test_upsert_sets_owner(self) -> None:
        registry = InMemorySubscriptionRegistry()
        sub = await registry.upsert("alice", make_subscription(owner_id="someone-else"))
        assert sub.owner_id == "alice"

    @pytest.mark.asyncio
    async def test_endpoint_moves_to_new_owner(self) -> None:
        registry = InMemorySubscriptionRegistry()
        endpoint = "https://push.example.com/shared-browser"
        await registry.upsert("alice", make_subscription(endpoint=endpoint))
        await registry.upsert("bob", make_subscription(endpoint=endpoint))

        assert await registry.get("alice") is None
        assert [owner for owner, _ in await registry.list_all()] == ["bob"]

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self) -> None:
        registry = InMemorySubscriptionRegistry()
        await registry.upsert("alice", make_subscription())
        assert await registry.remove("alice") is True
        assert await registry.remove("alice") is False
        assert await registry.list_all() == []

    @pytest.mark.asyncio
    async def test_remove_by_endpoint_spares_replacement(self) -> None:
        registry = InMemorySubscriptionRegistry()
        await registry.upsert("alice", make_subscription(endpoint="https://push.example.com/old"))
        await registry.upsert("alice", make_subscription(endpoint="https://push.example.com/new"))

        assert await registry.remove("alice", endpoint="https://push.example.com/old") is False
        sub = await registry.get("alice")
        assert sub is not None and sub.endpoint == "https://push.example.com/new"

        assert await registry.remove("alice", endpoint="https://push.example.com/new") is True
        assert await registry.get("alice") is None

    @pytest.mark.asyncio
    async def test_concurrent_upserts_keep_one_per_owner(self) -> None:
        registry = InMemorySubscriptionRegistry()
        await asyncio.gather(*(registry.upsert("alice", make_subscription()) for _ in range(10)))
        assert len(await registry.list_all()) == 1
