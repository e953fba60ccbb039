"""Integration tests for PushSubscriptionRepository."""

import pytest
from sqlmodel.ext.asyncio.session import AsyncSession

from countdown.repos.push_subscription import PushSubscriptionRepository
from tests.factories.push import make_subscription


@pytest.mark.integration
class TestPushSubscriptionRepository:
    """Integration tests for PushSubscriptionRepository."""

    @pytest.fixture
    def repo(self, db_session: AsyncSession) -> PushSubscriptionRepository:
        return PushSubscriptionRepository(db_session)

    async def test_upsert_and_get(self, repo: PushSubscriptionRepository, db_session: AsyncSession) -> None:
        created = await repo.upsert(make_subscription(owner_id="alice"))
        await db_session.commit()

        fetched = await repo.get_by_owner("alice")
        assert fetched is not None
        assert fetched.id == created.id

    async def test_upsert_keeps_one_row_per_owner(
        self, repo: PushSubscriptionRepository, db_session: AsyncSession
    ) -> None:
        first = await repo.upsert(make_subscription(owner_id="alice", endpoint="https://push.example.com/a"))
        await db_session.commit()
        second = await repo.upsert(make_subscription(owner_id="alice", endpoint="https://push.example.com/b"))
        await db_session.commit()

        assert second.id == first.id
        rows = await repo.list_all()
        assert len(rows) == 1
        assert rows[0].endpoint == "https://push.example.com/b"

    async def test_endpoint_moves_between_owners(
        self, repo: PushSubscriptionRepository, db_session: AsyncSession
    ) -> None:
        endpoint = "https://push.example.com/shared"
        await repo.upsert(make_subscription(owner_id="alice", endpoint=endpoint))
        await db_session.commit()
        await repo.upsert(make_subscription(owner_id="bob", endpoint=endpoint))
        await db_session.commit()

        assert await repo.get_by_owner("alice") is None
        assert (await repo.get_by_owner("bob")) is not None

    async def test_delete_by_owner(self, repo: PushSubscriptionRepository, db_session: AsyncSession) -> None:
        await repo.upsert(make_subscription(owner_id="alice"))
        await db_session.commit()

        assert await repo.delete_by_owner("alice") is True
        await db_session.commit()
        assert await repo.delete_by_owner("alice") is False
        assert await repo.list_all() == []

    async def test_delete_by_owner_and_endpoint(
        self, repo: PushSubscriptionRepository, db_session: AsyncSession
    ) -> None:
        await repo.upsert(make_subscription(owner_id="alice", endpoint="https://push.example.com/new"))
        await db_session.commit()

        assert await repo.delete_by_owner("alice", endpoint="https://push.example.com/old") is False
        await db_session.commit()
        assert await repo.get_by_owner("alice") is not None

        assert await repo.delete_by_owner("alice", endpoint="https://push.example.com/new") is True
        await db_session.commit()
        assert await repo.get_by_owner("alice") is None
