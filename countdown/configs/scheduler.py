from pydantic import BaseModel, Field


class SchedulerConfig(BaseModel):
    """Notification scheduler configuration.

    Every trigger window is held open for at least ``TickIntervalSeconds +
    TickSlackSeconds`` so a tick arriving late still falls inside it.
    """

    Enable: bool = Field(default=True, description="Register the periodic tick with Celery beat")
    TickIntervalSeconds: int = Field(default=300, gt=0, description="Seconds between scheduler ticks")
    TickSlackSeconds: int = Field(
        default=60,
        gt=0,
        description="Lateness a tick may have without a trigger window being skipped",
    )
    DefaultTimezone: str = Field(
        default="Europe/Moscow",
        description="IANA zone used when an owner has no room timezone or an unknown one",
    )
    MaxConcurrency: int = Field(default=16, description="Owners processed concurrently within one tick")

    FiringStore: str = Field(
        default="database",
        description="De-duplication store: memory | database | redis. "
        "Multi-instance deployments must use database or redis.",
    )
    FiringRetentionDays: int = Field(default=3, description="Expiry of redis firing keys")

    CronSecret: str = Field(
        default="",
        description="Bearer secret for /scheduler/tick and /notifications/send. Empty disables the check.",
    )
    OwnerDirectoryUrl: str = Field(
        default="",
        description="Base URL of the room/toy service answering timezone and eligibility lookups",
    )
    OwnerDirectoryTimeoutSeconds: float = Field(default=5.0)
