"""API v1 router that aggregates all sub-routers."""

from fastapi import APIRouter

from app.api.v1.fleet import router as fleet_router
from app.api.v1.pm_dot import router as pm_dot_router
from app.api.v1.workorders import router as workorders_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(fleet_router)
api_router.include_router(pm_dot_router)
api_router.include_router(workorders_router)
