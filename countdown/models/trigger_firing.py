"""De-duplication record: one delivery attempt per (trigger, owner, civil date)."""

from datetime import date, datetime, timezone
from enum import StrEnum
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import TIMESTAMP, UniqueConstraint
from sqlmodel import Column, Field, SQLModel


class FiringOutcome(StrEnum):
    PENDING = "pending"
    DELIVERED = "delivered"
    TEMPORARY_FAILURE = "temporary_failure"
    PERMANENT_FAILURE = "permanent_failure"
    ERROR = "error"


class TriggerFiring(SQLModel, table=True):
    __tablename__ = "trigger_firing"  # type: ignore
    __table_args__ = (UniqueConstraint("trigger_id", "owner_id", "civil_date", name="uq_trigger_firing_key"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    trigger_id: str = Field(index=True)
    owner_id: str = Field(index=True)
    civil_date: date
    outcome: str = Field(
        default=FiringOutcome.PENDING.value,
        sa_column=sa.Column(sa.String, nullable=False, server_default=FiringOutcome.PENDING.value),
        description="pending | delivered | temporary_failure | permanent_failure | error",
    )
    fired_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
    )
