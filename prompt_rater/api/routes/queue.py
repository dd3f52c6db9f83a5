"""
Run queue API Routes.

Tenant-wide queue snapshot, per-run detail and admin actions, plus the
manual worker trigger.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.auth.session import AdminSession, require_admin
from prompt_rater.config import Settings, get_settings
from prompt_rater.infra.db.session import get_db
from prompt_rater.services.run_tracker import RunTracker
from prompt_rater.services.worker_relay import WorkerEndpointStore, WorkerRelay

from ..deps import get_worker_relay
from ..schemas import (
    MessageResponse,
    QueueSnapshot,
    QueueSummary,
    RunAction,
    RunActionRequest,
    RunDeleteResponse,
    RunDetailResponse,
)
from .helpers import to_queued_run, to_run_detail

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("", response_model=QueueSnapshot)
async def get_queue(
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> QueueSnapshot:
    snapshot = await RunTracker(db, admin.tenant_id).get_queue_snapshot()
    return QueueSnapshot(
        runs=[to_queued_run(s) for s in snapshot.runs],
        summary=QueueSummary.model_validate(snapshot.summary),
    )


@router.post("")
async def trigger_worker(
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    relay: WorkerRelay = Depends(get_worker_relay),
) -> Any:
    """Ask the tenant's worker to process the queue now and pass its reply through."""
    worker_url = await WorkerEndpointStore(db, settings).resolve(admin.tenant_id)
    logger.info(f"Triggering worker at {worker_url} for tenant {admin.tenant_id}")
    return await relay.trigger(worker_url, admin.tenant_id)


@router.get("/{run_id}", response_model=RunDetailResponse)
async def get_run(
    run_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> RunDetailResponse:
    detail = await RunTracker(db, admin.tenant_id).get_run_detail(run_id)
    return to_run_detail(detail)


@router.patch("/{run_id}", response_model=MessageResponse)
async def update_run(
    run_id: str,
    data: RunActionRequest,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Cancel an active run or retry a failed one."""
    tracker = RunTracker(db, admin.tenant_id)
    if data.action == RunAction.CANCEL:
        await tracker.cancel_run(run_id)
        return MessageResponse(message="Run cancelled")
    await tracker.retry_run(run_id)
    return MessageResponse(message="Run queued for retry")


@router.delete("/{run_id}", response_model=RunDeleteResponse)
async def delete_run(
    run_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> RunDeleteResponse:
    counts = await RunTracker(db, admin.tenant_id).delete_run(run_id)
    return RunDeleteResponse(message="Run deleted", **counts)
