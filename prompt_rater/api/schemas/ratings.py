"""
API Schemas for rating matches and the rater workflow.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from .common import CamelModel
from .configs import CompletionResponse, InstanceResponse


# ============================================================================
# Admin ratings overview
# ============================================================================

class RatingResponseOut(CamelModel):
    id: str
    user_id: str
    outcome: str
    reasons: list[str] = Field(default_factory=list)
    notes: Optional[str] = None
    created_at: datetime


class RatingMatchResponse(CamelModel):
    id: str
    prompt_instance_id: str
    configuration_id: str
    round: int
    outcome: Optional[str] = None
    is_complete: bool
    prompt_instance: InstanceResponse
    option_a: CompletionResponse
    option_b: CompletionResponse
    winner: Optional[CompletionResponse] = None
    responses: list[RatingResponseOut] = Field(default_factory=list)
    created_at: datetime


class RatingsSummary(CamelModel):
    total_matches: int = 0
    completed_matches: int = 0
    pending_matches: int = 0
    total_responses: int = 0


class RatingsResponse(CamelModel):
    matches: list[RatingMatchResponse]
    summary: RatingsSummary
    variables: list[dict[str, Any]] = Field(default_factory=list)


# ============================================================================
# Rater workflow
# ============================================================================

class RaterConfiguration(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    rubric: Optional[str] = None
    prompt_template: str
    variables: list[dict[str, Any]] = Field(default_factory=list)


class RaterInstance(CamelModel):
    id: str
    data: dict[str, Any]


class RaterOption(CamelModel):
    id: str
    index: int
    output: str


class RaterMatch(CamelModel):
    """A match as shown to the rater judging it."""
    id: str
    round: int
    configuration: RaterConfiguration
    prompt_instance: RaterInstance
    option_a: RaterOption
    option_b: RaterOption


class MatchAssignmentResponse(CamelModel):
    match: Optional[RaterMatch] = None
    lock_expires_at: Optional[datetime] = Field(None, description="When the rater's hold on the match lapses")
    message: Optional[str] = None


class RatingSubmit(CamelModel):
    match_id: str
    outcome: str = Field(..., description="A_BETTER, B_BETTER, BOTH_GOOD or NEITHER_GOOD")
    reasons: list[str] = Field(default_factory=list)
    notes: Optional[str] = None


class RatingSubmitted(CamelModel):
    success: bool = True
    message: str = "Rating submitted successfully"
    response: RatingResponseOut
    winner_completion_id: Optional[str] = None
    next_round_matches: int = 0
    final_winner_completion_id: Optional[str] = None
    instance_status: str
