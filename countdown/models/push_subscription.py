"""Web Push subscription model."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import TIMESTAMP, Index
from sqlmodel import Column, Field, SQLModel


class PushSubscriptionBase(SQLModel):
    owner_id: str = Field(description="Opaque owner identity (no FK)")
    endpoint: str = Field(description="Browser Push Service URL")
    keys_p256dh: str = Field(description="P-256 ECDH public key")
    keys_auth: str = Field(description="Authentication secret")
    user_agent: str = Field(default="", description="Optional device identifier")


class PushSubscription(PushSubscriptionBase, table=True):
    """Browser Push API subscription, exactly one live subscription per owner."""

    __tablename__ = "push_subscription"  # type: ignore
    __table_args__ = (
        Index("idx_push_sub_owner", "owner_id", unique=True),
        Index("idx_push_sub_endpoint", "endpoint", unique=True),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
    )

    def subscription_info(self) -> dict[str, str | dict[str, str]]:
        """Shape expected by the Push API / pywebpush."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.keys_p256dh, "auth": self.keys_auth},
        }


class PushSubscriptionCreate(PushSubscriptionBase):
    pass
