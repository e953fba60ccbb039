"""API tests for subscription management, one-off sends and the tick endpoint."""

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from countdown.api.dependencies import get_scheduler
from countdown.configs import configs
from countdown.core.owners import StaticOwnerDirectory
from countdown.core.push.dispatcher import PushDispatcher
from countdown.core.push.registry import InMemorySubscriptionRegistry
from countdown.core.push.vapid import VapidSigner
from countdown.core.schedule.firing_store import InMemoryFiringStore
from countdown.core.schedule.scheduler import NotificationScheduler
from countdown.repos.push_subscription import PushSubscriptionRepository
from tests.factories.push import generate_receiver_keys, make_subscription
from tests.fixtures.push import FakePushService


def subscribe_body(owner_id: str = "alice", endpoint: str = "https://push.example.com/send/1") -> dict:
    keys = generate_receiver_keys()
    return {"owner_id": owner_id, "endpoint": endpoint, "keys": {"p256dh": keys.p256dh, "auth": keys.auth}}


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_subscribe_stores_subscription(self, async_client: AsyncClient, db_session: AsyncSession) -> None:
        response = await async_client.post("/api/v1/notifications/subscribe", json=subscribe_body())
        assert response.status_code == 200
        assert response.json() == {"success": True}

        stored = await PushSubscriptionRepository(db_session).get_by_owner("alice")
        assert stored is not None
        assert stored.endpoint == "https://push.example.com/send/1"

    @pytest.mark.asyncio
    async def test_resubscribe_replaces(self, async_client: AsyncClient, db_session: AsyncSession) -> None:
        await async_client.post("/api/v1/notifications/subscribe", json=subscribe_body())
        await async_client.post(
            "/api/v1/notifications/subscribe",
            json=subscribe_body(endpoint="https://push.example.com/send/2"),
        )

        subs = await PushSubscriptionRepository(db_session).list_all()
        assert [s.endpoint for s in subs] == ["https://push.example.com/send/2"]

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self, async_client: AsyncClient) -> None:
        await async_client.post("/api/v1/notifications/subscribe", json=subscribe_body())

        first = await async_client.request("DELETE", "/api/v1/notifications/subscribe", json={"owner_id": "alice"})
        second = await async_client.request("DELETE", "/api/v1/notifications/subscribe", json={"owner_id": "alice"})
        assert first.status_code == 200 and first.json() == {"success": True}
        assert second.status_code == 200 and second.json() == {"success": False}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"owner_id": "alice", "endpoint": "not a url", "keys": {"p256dh": "x", "auth": "y"}},
            {"owner_id": "alice", "endpoint": "https://push.example.com/1", "keys": {"p256dh": "x"}},
            {"owner_id": "", "endpoint": "https://push.example.com/1", "keys": {"p256dh": "x", "auth": "y"}},
        ],
    )
    async def test_rejects_invalid_body(self, async_client: AsyncClient, body: dict) -> None:
        response = await async_client.post("/api/v1/notifications/subscribe", json=body)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_config(self, async_client: AsyncClient) -> None:
        data = (await async_client.get("/api/v1/notifications/config")).json()
        assert data["enabled"] is True
        assert data["vapid_public_key"] == configs.Push.VapidPublicKey


@pytest_asyncio.fixture
async def scheduler(dependency_overrides: dict, dispatcher: PushDispatcher, signer: VapidSigner):
    registry = InMemorySubscriptionRegistry()
    scheduler = NotificationScheduler(registry, InMemoryFiringStore(), StaticOwnerDirectory(), dispatcher, signer=signer)
    dependency_overrides[get_scheduler] = lambda: scheduler
    return scheduler


@pytest.fixture
def cron_secret(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setattr(configs.Scheduler, "CronSecret", "s3cret")
    return "s3cret"


class TestSend:
    @pytest.mark.asyncio
    async def test_send_delivers(
        self, async_client: AsyncClient, scheduler: NotificationScheduler, push_service: FakePushService
    ) -> None:
        await scheduler.registry.upsert("alice", make_subscription(owner_id="alice"))
        response = await async_client.post(
            "/api/v1/notifications/send",
            json={"owner_id": "alice", "title": "Happy New Year!", "body": "From the tree", "tag": "greeting"},
        )
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["status"] == "delivered"
        assert len(push_service.requests) == 1

    @pytest.mark.asyncio
    async def test_send_to_unknown_owner(self, async_client: AsyncClient, scheduler: NotificationScheduler) -> None:
        response = await async_client.post("/api/v1/notifications/send", json={"owner_id": "nobody", "title": "Hi"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_send_requires_secret(
        self, async_client: AsyncClient, scheduler: NotificationScheduler, cron_secret: str
    ) -> None:
        response = await async_client.post("/api/v1/notifications/send", json={"owner_id": "alice", "title": "Hi"})
        assert response.status_code == 401


class TestTickEndpoint:
    @pytest.mark.asyncio
    async def test_rejects_missing_or_wrong_secret(
        self, async_client: AsyncClient, scheduler: NotificationScheduler, cron_secret: str
    ) -> None:
        assert (await async_client.post("/api/v1/scheduler/tick")).status_code == 401
        wrong = await async_client.post("/api/v1/scheduler/tick", headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401

    @pytest.mark.asyncio
    async def test_returns_summary(
        self, async_client: AsyncClient, scheduler: NotificationScheduler, cron_secret: str
    ) -> None:
        await scheduler.registry.upsert("alice", make_subscription(owner_id="alice"))
        response = await async_client.post("/api/v1/scheduler/tick", headers={"Authorization": f"Bearer {cron_secret}"})
        assert response.status_code == 200
        data = response.json()
        assert data["owners"] == 1
        assert data["errors"] == 0
        assert "started_at" in data
