from pydantic import BaseModel, Field


class PostgresConfig(BaseModel):
    Host: str = Field(default="localhost")
    Port: int = Field(default=5432)
    User: str = Field(default="postgres")
    Password: str = Field(default="postgres")
    DBName: str = Field(default="countdown")
    PoolSize: int = Field(default=10, description="Persistent connections kept in the pool")
    MaxOverflow: int = Field(default=20, description="Extra connections allowed under burst")


class SQLiteConfig(BaseModel):
    Path: str = Field(default="countdown.db", description="Database file, relative to the working directory")


class DatabaseConfig(BaseModel):
    """Storage for subscriptions and trigger firings.

    SQLite is enough for a single scheduler instance. With several instances
    the ``trigger_firing`` unique constraint has to live in one shared
    database, i.e. Postgres.
    """

    Engine: str = Field(default="sqlite", description="postgres | sqlite")
    Postgres: PostgresConfig = Field(default_factory=lambda: PostgresConfig())
    SQLite: SQLiteConfig = Field(default_factory=lambda: SQLiteConfig())

    @property
    def async_url(self) -> str:
        if self.Engine == "postgres":
            pg = self.Postgres
            return f"postgresql+asyncpg://{pg.User}:{pg.Password}@{pg.Host}:{pg.Port}/{pg.DBName}"
        if self.Engine == "sqlite":
            return f"sqlite+aiosqlite:///{self.SQLite.Path}"
        raise ValueError(f"Unsupported database engine: {self.Engine}")
