from fastapi import APIRouter

from .notifications import router as notifications_router
from .scheduler import router as scheduler_router
from .system import router as system_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(notifications_router, prefix="/notifications")
v1_router.include_router(scheduler_router)
v1_router.include_router(system_router)

__all__ = ["v1_router"]
