from pydantic import BaseModel, Field, computed_field


class RedisConfig(BaseModel):
    HOST: str = Field(default="localhost", description="Redis host")
    PORT: int = Field(default=6379, description="Redis port")
    DB: int = Field(default=0, description="Redis database index")
    PASSWORD: str = Field(default="", description="Redis password")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def REDIS_URL(self) -> str:
        auth = f":{self.PASSWORD}@" if self.PASSWORD else ""
        return f"redis://{auth}{self.HOST}:{self.PORT}/{self.DB}"
