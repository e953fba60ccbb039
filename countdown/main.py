import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from countdown.api import root_router
from countdown.configs import configs
from countdown.core.logger import LOGGING_CONFIG
from countdown.infra.database import create_db_and_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Create database tables
    await create_db_and_tables()

    # A bad VAPID pair must stop startup, not every delivery
    from countdown.core.push.vapid import ensure_vapid_keys

    if configs.Push.Enable:
        ensure_vapid_keys()

    logger.info(
        "Countdown service ready (env=%s, default timezone=%s, firing store=%s)",
        configs.Env,
        configs.Scheduler.DefaultTimezone,
        configs.Scheduler.FiringStore,
    )

    yield

    # Graceful shutdown: close global Redis client and DB engine
    from countdown.infra.redis import close_redis_client

    await close_redis_client()

    from countdown.infra.database.connection import async_engine

    await async_engine.dispose()


app = FastAPI(
    title="Countdown Service",
    description="Timezone-aware New-Year countdown scheduler with Web Push delivery",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    redirect_slashes=False,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(root_router)


if __name__ == "__main__":
    uvicorn.run(
        "countdown.main:app",
        host=configs.Host,
        port=configs.Port,
        log_config=LOGGING_CONFIG,
        reload=configs.Debug,
        reload_excludes=["tests"],
    )
