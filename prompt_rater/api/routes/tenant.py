"""
Per-tenant worker endpoint settings.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.auth.session import AdminSession, require_admin
from prompt_rater.config import Settings, get_settings
from prompt_rater.infra.db.session import get_db
from prompt_rater.services.worker_relay import WorkerEndpointStore

from ..schemas import WorkerEndpointResponse, WorkerEndpointUpdate

router = APIRouter(prefix="/tenant", tags=["tenant"])


@router.get("/worker-endpoint", response_model=WorkerEndpointResponse)
async def get_worker_endpoint(
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> WorkerEndpointResponse:
    endpoint = await WorkerEndpointStore(db, settings).get(admin.tenant_id)
    if endpoint is None:
        return WorkerEndpointResponse(tenant_id=admin.tenant_id, worker_url=settings.worker_url, is_default=True)
    return WorkerEndpointResponse.model_validate(endpoint)


@router.put("/worker-endpoint", response_model=WorkerEndpointResponse)
async def set_worker_endpoint(
    data: WorkerEndpointUpdate,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> WorkerEndpointResponse:
    endpoint = await WorkerEndpointStore(db, settings).set(admin.tenant_id, data.worker_url)
    return WorkerEndpointResponse.model_validate(endpoint)


@router.delete("/worker-endpoint", response_model=WorkerEndpointResponse)
async def clear_worker_endpoint(
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> WorkerEndpointResponse:
    """Drop the tenant override; the default worker URL applies again."""
    await WorkerEndpointStore(db, settings).clear(admin.tenant_id)
    return WorkerEndpointResponse(tenant_id=admin.tenant_id, worker_url=settings.worker_url, is_default=True)
