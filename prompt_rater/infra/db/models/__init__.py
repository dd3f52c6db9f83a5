"""
SQLAlchemy models for the rating database.

Exports all models for easy importing.
"""
from prompt_rater.infra.db.base import Base

# Import all models so they're registered with Base
from prompt_rater.infra.db.models.configuration import Configuration, ConfigurationStatus
from prompt_rater.infra.db.models.prompt_instance import Completion, PromptInstance, PromptInstanceStatus
from prompt_rater.infra.db.models.generation_run import (
    ACTIVE_RUN_STATUSES,
    GenerationRun,
    GenerationRunStatus,
    calculate_progress,
)
from prompt_rater.infra.db.models.rating import FinalWinner, RatingMatch, RatingOutcome, RatingResponse
from prompt_rater.infra.db.models.tenant_endpoint import TenantEndpoint

__all__ = [
    "Base",
    "Configuration",
    "ConfigurationStatus",
    "PromptInstance",
    "PromptInstanceStatus",
    "Completion",
    "GenerationRun",
    "GenerationRunStatus",
    "ACTIVE_RUN_STATUSES",
    "calculate_progress",
    "RatingMatch",
    "RatingResponse",
    "RatingOutcome",
    "FinalWinner",
    "TenantEndpoint",
]
