"""
Generation run repository.
"""
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from prompt_rater.infra.db.models.configuration import Configuration
from prompt_rater.infra.db.models.generation_run import (
    ACTIVE_RUN_STATUSES,
    GenerationRun,
    GenerationRunStatus,
)
from prompt_rater.infra.db.repositories.base import BaseRepository


class GenerationRunRepository(BaseRepository[GenerationRun]):
    """Repository for GenerationRun operations.

    Runs carry no tenant column; tenant scoping goes through the owning
    configuration.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(GenerationRun, session)

    async def get_for_tenant(self, id: str, tenant_id: str) -> Optional[GenerationRun]:
        """Get a run (with its configuration) if it belongs to the tenant."""
        stmt = (
            select(GenerationRun)
            .join(Configuration, Configuration.id == GenerationRun.configuration_id)
            .options(selectinload(GenerationRun.configuration))
            .where(GenerationRun.id == id)
            .where(Configuration.tenant_id == tenant_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active(self, configuration_id: str) -> Optional[GenerationRun]:
        """The QUEUED or RUNNING run of a configuration, if any."""
        stmt = (
            select(GenerationRun)
            .where(GenerationRun.configuration_id == configuration_id)
            .where(GenerationRun.status.in_(ACTIVE_RUN_STATUSES))
            .order_by(GenerationRun.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_active(self, configuration_id: str) -> Sequence[GenerationRun]:
        stmt = (
            select(GenerationRun)
            .where(GenerationRun.configuration_id == configuration_id)
            .where(GenerationRun.status.in_(ACTIVE_RUN_STATUSES))
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_history(self, configuration_id: str, tenant_id: str, limit: int = 10) -> Sequence[GenerationRun]:
        """Most recent runs of a configuration, newest first."""
        stmt = (
            select(GenerationRun)
            .join(Configuration, Configuration.id == GenerationRun.configuration_id)
            .where(GenerationRun.configuration_id == configuration_id)
            .where(Configuration.tenant_id == tenant_id)
            .order_by(GenerationRun.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_for_tenant(self, tenant_id: str) -> Sequence[GenerationRun]:
        """Every run of the tenant, newest first, with configuration loaded."""
        stmt = (
            select(GenerationRun)
            .join(Configuration, Configuration.id == GenerationRun.configuration_id)
            .options(selectinload(GenerationRun.configuration))
            .where(Configuration.tenant_id == tenant_id)
            .order_by(GenerationRun.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def next_for_worker(self) -> Optional[GenerationRun]:
        """Oldest RUNNING run, else oldest QUEUED run."""
        for status in (GenerationRunStatus.RUNNING.value, GenerationRunStatus.QUEUED.value):
            stmt = (
                select(GenerationRun)
                .options(selectinload(GenerationRun.configuration))
                .where(GenerationRun.status == status)
                .order_by(GenerationRun.created_at.asc())
                .limit(1)
            )
            result = await self.session.execute(stmt)
            run = result.scalar_one_or_none()
            if run:
                return run
        return None

    async def count_for_configuration(self, configuration_id: str) -> int:
        stmt = select(func.count(GenerationRun.id)).where(GenerationRun.configuration_id == configuration_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def start(self, run: GenerationRun) -> GenerationRun:
        """Mark a queued run as running."""
        if run.status == GenerationRunStatus.QUEUED.value:
            run.status = GenerationRunStatus.RUNNING.value
            run.started_at = datetime.utcnow()
            await self.session.flush()
        return run

    async def finish(self, runs: Sequence[GenerationRun], status: GenerationRunStatus,
                     error_message: Optional[str] = None) -> int:
        """Move runs to a terminal status and stamp completion time."""
        now = datetime.utcnow()
        for run in runs:
            run.status = status.value
            run.completed_at = now
            if error_message:
                run.error_message = error_message
        await self.session.flush()
        return len(runs)

    async def requeue(self, run: GenerationRun, total_instances: int) -> GenerationRun:
        """Queue the run again as a fresh pass over ``total_instances`` instances."""
        run.status = GenerationRunStatus.QUEUED.value
        run.started_at = None
        run.completed_at = None
        run.error_message = None
        run.total_instances = total_instances
        run.processed_count = 0
        await self.session.flush()
        return run

    async def increment_processed(self, run: GenerationRun, by: int = 1) -> GenerationRun:
        """Advance progress; never moves backwards or past total_instances."""
        run.processed_count = min(run.total_instances, run.processed_count + max(0, by))
        await self.session.flush()
        return run

    async def delete_for_configuration(self, configuration_id: str) -> int:
        stmt = delete(GenerationRun).where(GenerationRun.configuration_id == configuration_id)
        return await self._bulk_delete(stmt)
