"""Repository for trigger firing de-duplication records."""

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from countdown.models.trigger_firing import FiringOutcome, TriggerFiring

logger = logging.getLogger(__name__)


class TriggerFiringRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, trigger_id: str, owner_id: str, civil_date: date) -> TriggerFiring | None:
        stmt = select(TriggerFiring).where(
            col(TriggerFiring.trigger_id) == trigger_id,
            col(TriggerFiring.owner_id) == owner_id,
            col(TriggerFiring.civil_date) == civil_date,
        )
        result = await self.db.exec(stmt)
        return result.first()

    async def exists(self, trigger_id: str, owner_id: str, civil_date: date) -> bool:
        return await self.get(trigger_id, owner_id, civil_date) is not None

    async def claim(self, trigger_id: str, owner_id: str, civil_date: date) -> bool:
        """Insert the firing row; False when another writer got there first.

        Relies on the unique constraint, so it is safe across processes.
        Commits on its own so the claim is visible before delivery starts.
        """
        firing = TriggerFiring(trigger_id=trigger_id, owner_id=owner_id, civil_date=civil_date)
        self.db.add(firing)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False
        return True

    async def set_outcome(self, trigger_id: str, owner_id: str, civil_date: date, outcome: FiringOutcome) -> None:
        firing = await self.get(trigger_id, owner_id, civil_date)
        if firing is None:
            logger.warning("No firing to update for %s/%s/%s", trigger_id, owner_id, civil_date)
            return
        firing.outcome = outcome.value
        self.db.add(firing)
        await self.db.commit()

    async def list_for_owner(self, owner_id: str) -> list[TriggerFiring]:
        stmt = select(TriggerFiring).where(col(TriggerFiring.owner_id) == owner_id)
        result = await self.db.exec(stmt)
        return list(result.all())
