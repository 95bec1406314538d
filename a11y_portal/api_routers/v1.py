from fastapi import APIRouter

from a11y_portal.features.health.routes.health import router as health_router
from a11y_portal.features.scan.routes.scan import router as scan_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(scan_router)
