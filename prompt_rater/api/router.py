"""
API Router - Combines all route modules.
"""
from fastapi import APIRouter

from prompt_rater.config import get_settings

from .routes import configs, execution, exports, queue, ratings, tenant, worker

# Main API router
api_router = APIRouter(prefix="/api/v1")

# Include all route modules
api_router.include_router(configs.router)
api_router.include_router(execution.router)
api_router.include_router(exports.router)
api_router.include_router(queue.router)
api_router.include_router(ratings.router)
api_router.include_router(tenant.router)
api_router.include_router(worker.router)


# Health check at API level
@api_router.get("/health")
async def health_check() -> dict:
    """API health check."""
    return {"status": "ok", "version": get_settings().app_version}
