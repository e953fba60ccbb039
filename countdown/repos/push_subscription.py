"""Repository for Web Push subscriptions, one row per owner."""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from countdown.models.push_subscription import PushSubscription

logger = logging.getLogger(__name__)

_REPLACEABLE = {"endpoint", "keys_p256dh", "keys_auth", "user_agent"}


class PushSubscriptionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_owner(self, owner_id: str) -> PushSubscription | None:
        result = await self.db.exec(select(PushSubscription).where(col(PushSubscription.owner_id) == owner_id))
        return result.first()

    async def list_all(self) -> list[PushSubscription]:
        return list((await self.db.exec(select(PushSubscription))).all())

    async def upsert(self, sub: PushSubscription) -> PushSubscription:
        """Make *sub* the owner's only subscription.

        An endpoint identifies one browser profile, so if another owner
        still holds it (shared device, new login) that row goes first.
        Does not commit.
        """
        moved = await self.db.execute(
            delete(PushSubscription).where(
                col(PushSubscription.endpoint) == sub.endpoint,
                col(PushSubscription.owner_id) != sub.owner_id,
            )
        )
        if moved.rowcount:
            logger.info("Endpoint taken over by owner %s", sub.owner_id)

        current = await self.get_by_owner(sub.owner_id)
        if current is None:
            current = sub
        else:
            current.sqlmodel_update(sub.model_dump(include=_REPLACEABLE))
            current.created_at = datetime.now(timezone.utc)
        self.db.add(current)
        await self.db.flush()
        await self.db.refresh(current)
        return current

    async def delete_by_owner(self, owner_id: str, endpoint: str | None = None) -> bool:
        """Delete the owner's subscription, only while it uses *endpoint* when given. Does not commit."""
        stmt = delete(PushSubscription).where(col(PushSubscription.owner_id) == owner_id)
        if endpoint is not None:
            stmt = stmt.where(col(PushSubscription.endpoint) == endpoint)
        result = await self.db.execute(stmt)
        return bool(result.rowcount)
