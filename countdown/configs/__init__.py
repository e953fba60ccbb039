"""Application configuration.

Every section is a nested pydantic model under a single settings root, so
any field can be overridden from the environment, e.g.
``COUNTDOWN_Push_VapidPrivateKey`` or ``COUNTDOWN_Scheduler_DefaultTimezone``.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .database import DatabaseConfig
from .push import PushConfig
from .redis import RedisConfig
from .scheduler import SchedulerConfig


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COUNTDOWN_",
        env_nested_delimiter="_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    Env: str = Field(default="dev", description="Deployment environment (dev, prod)")
    Debug: bool = Field(default=False)
    Host: str = Field(default="0.0.0.0")
    Port: int = Field(default=48196)
    LogLevel: str = Field(default="INFO")

    Push: PushConfig = Field(default_factory=lambda: PushConfig())
    Scheduler: SchedulerConfig = Field(default_factory=lambda: SchedulerConfig())
    Database: DatabaseConfig = Field(default_factory=lambda: DatabaseConfig())
    Redis: RedisConfig = Field(default_factory=lambda: RedisConfig())


configs = AppConfig()

__all__ = ["AppConfig", "configs"]
