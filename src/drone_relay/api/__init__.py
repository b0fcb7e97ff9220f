"""HTTP and streaming API for the relay."""
from fastapi import APIRouter

from .routes import admin, broadcast, health, locations, simulations, stream

router = APIRouter()
router.include_router(health.router)
router.include_router(locations.router)
router.include_router(broadcast.router, prefix="/api")
router.include_router(simulations.router, prefix="/api")
router.include_router(stream.router)
router.include_router(admin.router, prefix="/v1/admin")

__all__ = ["router"]
