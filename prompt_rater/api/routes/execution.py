"""
Execution and recovery endpoints for a configuration.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.auth.session import AdminSession, require_admin
from prompt_rater.config import Settings, get_settings
from prompt_rater.infra.db.session import get_db
from prompt_rater.services.lifecycle import LifecycleManager
from prompt_rater.services.recovery import RecoveryService, parse_reset_mode

from ..schemas import (
    ExecuteResponse,
    ForceCompleteResponse,
    ResetRequest,
    ResetResponse,
    RunHistory,
)
from ..schemas.common import camelize_keys
from .helpers import to_run

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/configs/{config_id}", tags=["execution"])


@router.post("/execute", response_model=ExecuteResponse)
async def execute_config(
    config_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ExecuteResponse:
    """Queue a generation run over the configuration's pending instances."""
    run = await LifecycleManager(db, admin.tenant_id).start_run(config_id)
    return ExecuteResponse(
        run_id=run.id,
        total_instances=run.total_instances,
        message=f"Generation run queued for {run.total_instances} instance(s)",
    )


@router.get("/execute", response_model=RunHistory)
async def get_run_history(
    config_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> RunHistory:
    runs = await LifecycleManager(db, admin.tenant_id).get_run_history(config_id, limit=settings.run_history_limit)
    return RunHistory(runs=[to_run(r) for r in runs])


@router.post("/force-complete", response_model=ForceCompleteResponse)
async def force_complete(
    config_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ForceCompleteResponse:
    """
    Finish a stuck configuration.

    Instances with at least two completions become ready for rating and get
    their round-1 matches; the rest are reported as skipped.
    """
    result = await RecoveryService(db, admin.tenant_id).force_complete(config_id)
    return ForceCompleteResponse(
        instances_marked_ready=result.instances_marked_ready,
        instances_skipped=result.instances_skipped,
        rating_matches_created=result.rating_matches_created,
        completed_runs=result.completed_runs,
        errors=result.errors,
    )


@router.post("/reset", response_model=ResetResponse)
async def reset_config(
    config_id: str,
    data: Optional[ResetRequest] = None,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ResetResponse:
    mode = parse_reset_mode(data.mode if data else None)
    result = await RecoveryService(db, admin.tenant_id).reset(config_id, mode)
    return ResetResponse(
        message=f"Configuration reset ({mode.value} mode)",
        results=camelize_keys(result.counts()),
    )
