"""
Repository layer for database operations.

Provides easy access to all repositories.
"""
from prompt_rater.infra.db.repositories.base import BaseRepository
from prompt_rater.infra.db.repositories.configuration import ConfigurationRepository
from prompt_rater.infra.db.repositories.instance import CompletionRepository, PromptInstanceRepository
from prompt_rater.infra.db.repositories.run import GenerationRunRepository
from prompt_rater.infra.db.repositories.rating import FinalWinnerRepository, RatingMatchRepository
from prompt_rater.infra.db.repositories.tenant_endpoint import TenantEndpointRepository

__all__ = [
    "BaseRepository",
    "ConfigurationRepository",
    "PromptInstanceRepository",
    "CompletionRepository",
    "GenerationRunRepository",
    "RatingMatchRepository",
    "FinalWinnerRepository",
    "TenantEndpointRepository",
]
