"""
Completion ingestion.

The external worker pulls work with ``claim_next_run`` and reports each
generated output with ``record_completion``. Readiness, run progress and
run completion are decided here, never by the worker.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.errors import ConflictError, NotFoundError, ValidationError
from prompt_rater.infra.db.models import (
    Completion,
    Configuration,
    ConfigurationStatus,
    GenerationRun,
    GenerationRunStatus,
    PromptInstance,
    PromptInstanceStatus,
)
from prompt_rater.infra.db.repositories import (
    CompletionRepository,
    ConfigurationRepository,
    GenerationRunRepository,
    PromptInstanceRepository,
)
from prompt_rater.services.match_builder import MatchBuilder, MatchCounter, is_rateable

logger = logging.getLogger(__name__)

OPEN_STATUSES = (PromptInstanceStatus.PENDING.value, PromptInstanceStatus.GENERATING.value)

__all__ = [
    "ClaimedBatch",
    "ClaimedInstance",
    "CompletionIngestion",
    "RecordedCompletion",
    "interpolate_prompt",
    "is_rateable",
]


def interpolate_prompt(template: str, variables: dict[str, str]) -> str:
    """Replace ``{{ key }}`` placeholders with instance values.

    Unknown placeholders are left in place.
    """
    result = template
    for key, value in (variables or {}).items():
        pattern = re.compile(r"\{\{\s*" + re.escape(key) + r"\s*\}\}")
        result = pattern.sub(lambda _: str(value), result)
    return result


@dataclass
class ClaimedInstance:
    instance: PromptInstance
    prompt: str
    completions_needed: int


@dataclass
class ClaimedBatch:
    run: GenerationRun
    configuration: Configuration
    instances: list[ClaimedInstance] = field(default_factory=list)

    @property
    def run_completed(self) -> bool:
        return self.run.status == GenerationRunStatus.COMPLETED.value


@dataclass
class RecordedCompletion:
    completion: Completion
    instance: PromptInstance
    run: GenerationRun
    ready_for_rating: bool = False
    matches_created: int = 0


class CompletionIngestion:
    """Worker-facing operations. Not tenant-scoped: the worker serves every tenant."""

    def __init__(self, session: AsyncSession, batch_size: int = 10):
        self.session = session
        self.batch_size = batch_size
        self.runs = GenerationRunRepository(session)
        self.configs = ConfigurationRepository(session)
        self.instances = PromptInstanceRepository(session)
        self.completions = CompletionRepository(session)
        self.match_builder = MatchBuilder(session)

    async def claim_next_run(self) -> Optional[ClaimedBatch]:
        """Hand the worker its next batch.

        Picks the oldest RUNNING run, else the oldest QUEUED one (which
        becomes RUNNING). Claimed instances move to GENERATING. A run with
        nothing left open is completed on the spot and returned with an
        empty batch. Returns None when no run is waiting.
        """
        run = await self.runs.next_for_worker()
        if run is None:
            return None

        await self.runs.start(run)
        config = run.configuration
        batch = ClaimedBatch(run=run, configuration=config)

        open_instances = await self.instances.list_by_status(
            config.id, OPEN_STATUSES, with_completions=True, limit=self.batch_size
        )
        if not open_instances:
            await self._complete_run(run, config)
            return batch

        await self.instances.set_status(open_instances, PromptInstanceStatus.GENERATING.value)
        for instance in open_instances:
            batch.instances.append(ClaimedInstance(
                instance=instance,
                prompt=interpolate_prompt(config.prompt_template, instance.data),
                completions_needed=max(0, config.generations_per_instance - len(instance.completions)),
            ))
        logger.info(f"[WORKER] Claimed {len(batch.instances)} instance(s) from run {run.id}")
        return batch

    async def record_completion(
        self,
        instance_id: str,
        output: str,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        tokens_used: Optional[int] = None,
    ) -> RecordedCompletion:
        """Append one generated output to an instance.

        Raises:
            NotFoundError: unknown instance
            ValidationError: empty output, instance no longer open, or no active run
            ConflictError: another completion took the same index concurrently
        """
        if not output or not output.strip():
            raise ValidationError("Completion output cannot be empty")

        instance = await self.instances.get_with_completions(instance_id)
        if instance is None:
            raise NotFoundError("Instance not found")
        if instance.status not in OPEN_STATUSES:
            raise ValidationError(f"Instance is {instance.status}; completions are no longer accepted")

        config = instance.configuration
        run = await self.runs.get_active(config.id)
        if run is None:
            raise ValidationError("No active generation run for this configuration")
        await self.runs.start(run)

        existing = list(instance.completions)
        completion = Completion(
            prompt_instance_id=instance.id,
            generation_run_id=run.id,
            index=await self.completions.next_index(instance.id),
            output=output,
            provider=provider or run.provider,
            model_name=model_name or run.model_name,
            tokens_used=tokens_used,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(completion)
                await self.session.flush()
        except IntegrityError as e:
            raise ConflictError("Completion index already recorded for this instance; retry") from e

        result = RecordedCompletion(completion=completion, instance=instance, run=run)
        completions = existing + [completion]
        if len(completions) >= config.generations_per_instance:
            await self.instances.set_status([instance], PromptInstanceStatus.READY_FOR_RATING.value)
            await self.runs.increment_processed(run)
            result.ready_for_rating = True
            result.matches_created = await self.match_builder.build_matches(instance, completions=completions)
            logger.info(
                f"[WORKER] Instance {instance.id} ready for rating "
                f"({run.processed_count}/{run.total_instances} processed in run {run.id})"
            )
            await self._complete_if_drained(run, config)
        else:
            await self.instances.set_status([instance], PromptInstanceStatus.GENERATING.value)

        return result

    async def release_instance(self, instance_id: str, error: Optional[str] = None) -> PromptInstance:
        """Return a failed instance to PENDING so a later claim retries it."""
        instance = await self.instances.get_by_id(instance_id)
        if instance is None:
            raise NotFoundError("Instance not found")
        if instance.status not in OPEN_STATUSES:
            raise ValidationError(f"Instance is {instance.status}; only pending or generating instances can be released")

        await self.instances.set_status([instance], PromptInstanceStatus.PENDING.value)
        logger.warning(f"[WORKER] Instance {instance.id} released back to PENDING: {error or 'no reason given'}")
        return instance

    async def _complete_if_drained(self, run: GenerationRun, config: Configuration) -> None:
        remaining = await self.instances.count_by_status(config.id, OPEN_STATUSES)
        if remaining == 0:
            await self._complete_run(run, config)

    async def _complete_run(self, run: GenerationRun, config: Configuration) -> None:
        await self.runs.finish([run], GenerationRunStatus.COMPLETED)
        await self.configs.set_status(config, ConfigurationStatus.COMPLETED.value)

        # Brackets normally exist already; this catches instances readied elsewhere
        counter = MatchCounter()
        for instance in await self.instances.list_by_status(
            config.id, [PromptInstanceStatus.READY_FOR_RATING.value], with_completions=True
        ):
            await self.match_builder.build_matches(instance, counter=counter)
        logger.info(f"[WORKER] Run {run.id} completed; {counter.created} additional match(es) seeded")
