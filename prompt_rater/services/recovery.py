"""
Recovery operations: force-complete and reset.

Both run inside the request's transaction. If any step fails the whole
operation rolls back, so a configuration is never left half-reset.
"""
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.errors import NotFoundError, ValidationError
from prompt_rater.infra.db.models import (
    ConfigurationStatus,
    GenerationRunStatus,
    PromptInstanceStatus,
)
from prompt_rater.infra.db.repositories import (
    CompletionRepository,
    ConfigurationRepository,
    FinalWinnerRepository,
    GenerationRunRepository,
    PromptInstanceRepository,
    RatingMatchRepository,
)
from prompt_rater.services.match_builder import MatchBuilder, MatchCounter, is_rateable

logger = logging.getLogger(__name__)

STUCK_STATUSES = (PromptInstanceStatus.PENDING.value, PromptInstanceStatus.GENERATING.value)


class ResetMode(str, Enum):
    SOFT = "soft"
    HARD = "hard"


@dataclass
class ForceCompleteResult:
    instances_marked_ready: int = 0
    instances_skipped: int = 0
    rating_matches_created: int = 0
    completed_runs: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class ResetResult:
    mode: ResetMode
    cancelled_runs: int = 0
    reset_instances: int = 0
    config_reset: bool = False
    deleted_responses: Optional[int] = None
    deleted_completions: Optional[int] = None
    deleted_matches: Optional[int] = None
    deleted_winners: Optional[int] = None
    deleted_runs: Optional[int] = None

    def counts(self) -> dict:
        """Reported counts; hard-only fields are omitted for a soft reset."""
        data = asdict(self)
        data.pop("mode")
        return {k: v for k, v in data.items() if v is not None}


def parse_reset_mode(mode: Optional[str]) -> ResetMode:
    try:
        return ResetMode((mode or ResetMode.SOFT.value).lower())
    except ValueError:
        raise ValidationError(f"Invalid reset mode '{mode}'. Use 'soft' or 'hard'.")


class RecoveryService:
    """Salvage or roll back a configuration's generation state."""

    def __init__(self, session: AsyncSession, tenant_id: str):
        self.session = session
        self.configs = ConfigurationRepository(session, tenant_id=tenant_id)
        self.instances = PromptInstanceRepository(session)
        self.completions = CompletionRepository(session)
        self.runs = GenerationRunRepository(session)
        self.matches = RatingMatchRepository(session)
        self.winners = FinalWinnerRepository(session)
        self.match_builder = MatchBuilder(session)

    async def _load(self, config_id: str):
        config = await self.configs.get_for_update(config_id)
        if config is None:
            raise NotFoundError("Configuration not found")
        return config

    async def force_complete(self, config_id: str) -> ForceCompleteResult:
        """Close out a stuck configuration.

        PENDING/GENERATING instances with two or more completions become
        READY_FOR_RATING; the rest keep their status and are reported.
        Active runs are marked COMPLETED, the configuration COMPLETED, and
        every ready instance without a bracket gets one. Running it again
        changes nothing.
        """
        config = await self._load(config_id)
        result = ForceCompleteResult()

        stuck = await self.instances.list_by_status(config.id, STUCK_STATUSES, with_completions=True)
        ready = []
        for instance in stuck:
            count = len(instance.completions)
            if is_rateable(count):
                ready.append(instance)
            else:
                result.instances_skipped += 1
                result.errors.append(
                    f"Instance {instance.id} skipped: only {count} completion(s), needs at least 2"
                )
        result.instances_marked_ready = await self.instances.set_status(
            ready, PromptInstanceStatus.READY_FOR_RATING.value
        )

        active = await self.runs.list_active(config.id)
        result.completed_runs = await self.runs.finish(active, GenerationRunStatus.COMPLETED)
        await self.configs.set_status(config, ConfigurationStatus.COMPLETED.value)

        counter = MatchCounter()
        for instance in await self.instances.list_by_status(
            config.id, [PromptInstanceStatus.READY_FOR_RATING.value], with_completions=True
        ):
            await self.match_builder.build_matches(instance, counter=counter)
        result.rating_matches_created = counter.created

        logger.info(
            f"[FORCE-COMPLETE] Configuration {config.id}: ready={result.instances_marked_ready} "
            f"skipped={result.instances_skipped} matches={result.rating_matches_created} "
            f"runs_completed={result.completed_runs}"
        )
        return result

    async def reset(self, config_id: str, mode: ResetMode = ResetMode.SOFT) -> ResetResult:
        """Return a configuration to DRAFT with every instance PENDING.

        A hard reset also deletes responses, matches, final winners,
        completions and runs, children before parents.
        """
        config = await self._load(config_id)
        result = ResetResult(mode=mode)

        active = await self.runs.list_active(config.id)
        result.cancelled_runs = await self.runs.finish(active, GenerationRunStatus.FAILED)

        not_pending = await self.instances.list_not_in_status(config.id, PromptInstanceStatus.PENDING.value)
        result.reset_instances = await self.instances.set_status(not_pending, PromptInstanceStatus.PENDING.value)

        await self.configs.set_status(config, ConfigurationStatus.DRAFT.value)
        result.config_reset = True

        if mode == ResetMode.HARD:
            result.deleted_responses = await self.matches.delete_responses_for_configuration(config.id)
            result.deleted_matches = await self.matches.delete_for_configuration(config.id)
            result.deleted_winners = await self.winners.delete_for_configuration(config.id)
            result.deleted_completions = await self.completions.delete_for_configuration(config.id)
            result.deleted_runs = await self.runs.delete_for_configuration(config.id)

        logger.info(f"[RESET] Configuration {config.id} reset with mode={mode.value}: {result.counts()}")
        return result
