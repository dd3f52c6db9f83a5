"""
Worker-facing routes.

The external generation worker authenticates with the worker secret, not a
user session, and acts across tenants.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.config import Settings, get_settings
from prompt_rater.infra.db.session import get_db
from prompt_rater.services.ingestion import CompletionIngestion

from ..deps import verify_worker_secret
from ..schemas import (
    ClaimedInstanceOut,
    ClaimResponse,
    CompletionCreate,
    CompletionRecorded,
    ReleaseRequest,
    ReleaseResponse,
)
from .helpers import to_run

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/worker", tags=["worker"], dependencies=[Depends(verify_worker_secret)])


@router.post("/claim", response_model=ClaimResponse)
async def claim(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ClaimResponse:
    """Claim the next batch of instances to generate."""
    batch = await CompletionIngestion(db, batch_size=settings.worker_batch_size).claim_next_run()
    if batch is None:
        return ClaimResponse(message="No queued runs")

    if batch.run_completed:
        message = "Run completed - no pending instances"
    else:
        message = f"Claimed {len(batch.instances)} instance(s)"
    return ClaimResponse(
        run=to_run(batch.run),
        configuration_id=batch.configuration.id,
        model_provider=batch.run.provider,
        model_name=batch.run.model_name,
        instances=[
            ClaimedInstanceOut(
                id=item.instance.id,
                data=item.instance.data,
                prompt=item.prompt,
                completions_needed=item.completions_needed,
            )
            for item in batch.instances
        ],
        message=message,
    )


@router.post("/instances/{instance_id}/completions", response_model=CompletionRecorded, status_code=201)
async def record_completion(
    instance_id: str,
    data: CompletionCreate,
    db: AsyncSession = Depends(get_db),
) -> CompletionRecorded:
    result = await CompletionIngestion(db).record_completion(
        instance_id,
        output=data.output,
        provider=data.provider,
        model_name=data.model_name,
        tokens_used=data.tokens_used,
    )
    return CompletionRecorded(
        completion_id=result.completion.id,
        index=result.completion.index,
        instance_status=result.instance.status,
        ready_for_rating=result.ready_for_rating,
        matches_created=result.matches_created,
        run_status=result.run.status,
        processed_count=result.run.processed_count,
    )


@router.post("/instances/{instance_id}/release", response_model=ReleaseResponse)
async def release_instance(
    instance_id: str,
    data: Optional[ReleaseRequest] = None,
    db: AsyncSession = Depends(get_db),
) -> ReleaseResponse:
    """Hand a failed instance back so the next claim retries it."""
    instance = await CompletionIngestion(db).release_instance(instance_id, error=data.error if data else None)
    return ReleaseResponse(instance_id=instance.id, status=instance.status)
