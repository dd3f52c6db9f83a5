"""
API Schemas for force-complete and reset.
"""
from typing import Any

from pydantic import Field

from .common import CamelModel


class ForceCompleteResponse(CamelModel):
    success: bool = True
    message: str = "Configuration force completed"
    instances_marked_ready: int = 0
    instances_skipped: int = 0
    rating_matches_created: int = 0
    completed_runs: int = 0
    errors: list[str] = Field(default_factory=list)


class ResetRequest(CamelModel):
    mode: str = Field("soft", description="'soft' resets statuses, 'hard' also deletes generated data")


class ResetResponse(CamelModel):
    message: str
    results: dict[str, Any]
