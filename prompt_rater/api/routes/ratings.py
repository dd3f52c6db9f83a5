"""
Rater API Routes.

Any signed-in user of a tenant can take the next open match and submit a
verdict on it.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.auth.session import SessionUser, require_rater
from prompt_rater.infra.db.session import get_db
from prompt_rater.services.rating import RatingService

from ..schemas import (
    MatchAssignmentResponse,
    RaterMatch,
    RatingResponseOut,
    RatingSubmit,
    RatingSubmitted,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ratings", tags=["ratings"])


@router.get("", response_model=MatchAssignmentResponse)
async def get_next_match(
    user: SessionUser = Depends(require_rater),
    db: AsyncSession = Depends(get_db),
) -> MatchAssignmentResponse:
    """
    Hand the caller a match to judge, locked to them for five minutes.

    A match the caller already holds is returned again with a fresh lock.
    """
    assignment = await RatingService(db, user.tenant_id, user.user_id).next_match()
    if assignment.match is None:
        return MatchAssignmentResponse(message="No matches available for rating")
    return MatchAssignmentResponse(
        match=RaterMatch.model_validate(assignment.match),
        lock_expires_at=assignment.lock_expires_at,
    )


@router.post("", response_model=RatingSubmitted)
async def submit_rating(
    data: RatingSubmit,
    user: SessionUser = Depends(require_rater),
    db: AsyncSession = Depends(get_db),
) -> RatingSubmitted:
    result = await RatingService(db, user.tenant_id, user.user_id).submit(
        data.match_id, data.outcome, reasons=data.reasons, notes=data.notes
    )
    return RatingSubmitted(
        response=RatingResponseOut.model_validate(result.response),
        winner_completion_id=result.match.winner_completion_id,
        next_round_matches=result.next_round_matches,
        final_winner_completion_id=result.final_winner_id,
        instance_status=result.instance_status,
    )
