from fastapi import APIRouter

from app.api.v1.endpoints import automation, capacity, handover, health, routing

router = APIRouter(prefix="/api/v1")

router.include_router(routing.router)
router.include_router(capacity.router)
router.include_router(automation.router)
router.include_router(handover.router)
router.include_router(health.router)
