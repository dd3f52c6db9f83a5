"""
Generation run tracker.

Read side: the tenant's queue snapshot and per-run detail. Write side: the
admin actions on a single run (cancel, retry, delete).
"""
import logging
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.errors import NotFoundError, RunAlreadyInProgressError, ValidationError
from prompt_rater.infra.db.models import (
    Completion,
    ConfigurationStatus,
    GenerationRun,
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

logger = logging.getLogger(__name__)

RECENT_COMPLETIONS_LIMIT = 10


@dataclass
class RunSnapshot:
    run: GenerationRun
    instance_stats: dict[str, int]

    @property
    def progress(self) -> int:
        return self.run.progress


@dataclass
class QueueSummary:
    queued_runs: int = 0
    running_runs: int = 0
    completed_runs: int = 0
    failed_runs: int = 0
    total_pending_instances: int = 0
    total_generating_instances: int = 0


@dataclass
class QueueSnapshot:
    runs: list[RunSnapshot] = field(default_factory=list)
    summary: QueueSummary = field(default_factory=QueueSummary)


@dataclass
class RunDetail:
    run: GenerationRun
    recent_completions: Sequence[Completion]
    instance_stats: dict[str, int]


class RunTracker:
    """Tenant-scoped view and control of generation runs."""

    def __init__(self, session: AsyncSession, tenant_id: str):
        self.session = session
        self.tenant_id = tenant_id
        self.runs = GenerationRunRepository(session)
        self.configs = ConfigurationRepository(session, tenant_id=tenant_id)
        self.instances = PromptInstanceRepository(session)
        self.completions = CompletionRepository(session)
        self.matches = RatingMatchRepository(session)
        self.winners = FinalWinnerRepository(session)

    async def _get_run(self, run_id: str) -> GenerationRun:
        run = await self.runs.get_for_tenant(run_id, self.tenant_id)
        if run is None:
            raise NotFoundError("Run not found")
        return run

    async def get_queue_snapshot(self) -> QueueSnapshot:
        """Every run of the tenant, newest first, with live instance counts.

        Instance counts come from a single grouped query over the
        configurations that currently have a QUEUED or RUNNING run; other
        runs report empty stats.
        """
        runs = await self.runs.list_for_tenant(self.tenant_id)
        active_config_ids = {run.configuration_id for run in runs if run.is_active}
        stats_by_config = await self.instances.grouped_status_counts(active_config_ids)

        snapshot = QueueSnapshot()
        summary = snapshot.summary
        for run in runs:
            snapshot.runs.append(RunSnapshot(run=run, instance_stats=stats_by_config.get(run.configuration_id, {})))
            if run.status == GenerationRunStatus.QUEUED.value:
                summary.queued_runs += 1
            elif run.status == GenerationRunStatus.RUNNING.value:
                summary.running_runs += 1
            elif run.status == GenerationRunStatus.COMPLETED.value:
                summary.completed_runs += 1
            elif run.status == GenerationRunStatus.FAILED.value:
                summary.failed_runs += 1

        for stats in stats_by_config.values():
            summary.total_pending_instances += stats.get(PromptInstanceStatus.PENDING.value, 0)
            summary.total_generating_instances += stats.get(PromptInstanceStatus.GENERATING.value, 0)
        return snapshot

    async def get_run_detail(self, run_id: str) -> RunDetail:
        run = await self._get_run(run_id)
        recent = await self.completions.recent_for_run(run.id, limit=RECENT_COMPLETIONS_LIMIT)
        stats = await self.instances.status_counts(run.configuration_id)
        return RunDetail(run=run, recent_completions=recent, instance_stats=stats)

    async def cancel_run(self, run_id: str) -> GenerationRun:
        """Fail an active run and hand its in-flight instances back to PENDING."""
        run = await self._get_run(run_id)
        if not run.is_active:
            raise ValidationError("Only queued or running runs can be cancelled")

        await self.runs.finish([run], GenerationRunStatus.FAILED, error_message="Cancelled by admin")
        generating = await self.instances.list_by_status(run.configuration_id, [PromptInstanceStatus.GENERATING.value])
        released = await self.instances.set_status(generating, PromptInstanceStatus.PENDING.value)
        await self.configs.set_status(run.configuration, ConfigurationStatus.DRAFT.value)

        logger.info(f"Cancelled run {run.id} ({released} generating instance(s) returned to PENDING)")
        return run

    async def retry_run(self, run_id: str) -> GenerationRun:
        """Put a FAILED run back in the queue."""
        run = await self._get_run(run_id)
        if run.status != GenerationRunStatus.FAILED.value:
            raise ValidationError("Only failed runs can be retried")

        config = run.configuration
        if await self.runs.get_active(config.id) is not None:
            raise RunAlreadyInProgressError()
        if config.status != ConfigurationStatus.DRAFT.value:
            raise ValidationError(f"Configuration is {config.status}. Reset it before retrying a run.")

        pending = await self.instances.count_by_status(config.id, [PromptInstanceStatus.PENDING.value])
        try:
            await self.runs.requeue(run, total_instances=pending)
        except IntegrityError as e:
            raise RunAlreadyInProgressError() from e
        await self.configs.set_status(config, ConfigurationStatus.EXECUTING.value)

        logger.info(f"Run {run.id} queued for retry ({pending} pending instance(s))")
        return run

    async def delete_run(self, run_id: str) -> dict[str, int]:
        """Delete a run with the completions it produced.

        Matches and final winners that point at those completions go too,
        and the affected instances return to PENDING. Deleting an active run
        also releases the configuration; deleting the last run returns it to
        DRAFT.
        """
        run = await self._get_run(run_id)
        config = run.configuration
        was_active = run.is_active

        completion_ids = await self.completions.ids_for_run(run.id)
        instance_ids = await self.completions.instance_ids_for_run(run.id)

        deleted_matches = await self.matches.delete_referencing(completion_ids)
        deleted_winners = await self.winners.delete_referencing(completion_ids)
        deleted_completions = await self.completions.delete_by_ids(completion_ids)

        affected = await self.instances.list_by_ids(instance_ids)
        reset_instances = await self.instances.set_status(affected, PromptInstanceStatus.PENDING.value)
        if was_active:
            generating = await self.instances.list_by_status(config.id, [PromptInstanceStatus.GENERATING.value])
            reset_instances += await self.instances.set_status(generating, PromptInstanceStatus.PENDING.value)

        await self.runs.delete(run.id)

        if was_active or await self.runs.count_for_configuration(config.id) == 0:
            await self.configs.set_status(config, ConfigurationStatus.DRAFT.value)

        counts = {
            "deleted_completions": deleted_completions,
            "deleted_matches": deleted_matches,
            "deleted_winners": deleted_winners,
            "reset_instances": reset_instances,
        }
        logger.info(f"Deleted run {run_id}: {counts}")
        return counts
