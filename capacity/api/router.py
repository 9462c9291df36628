"""Top-level API router."""

from fastapi import APIRouter

from capacity.api.routes.allocations import router as allocations_router
from capacity.api.routes.assignments import router as assignments_router
from capacity.api.routes.audit import router as audit_router
from capacity.api.routes.health import router as health_router
from capacity.api.routes.phases import router as phases_router
from capacity.api.routes.timeline import router as timeline_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(assignments_router)
api_router.include_router(allocations_router)
api_router.include_router(phases_router)
api_router.include_router(timeline_router)
api_router.include_router(audit_router)
