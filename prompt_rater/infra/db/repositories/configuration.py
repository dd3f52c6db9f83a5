"""
Configuration repository for CRUD operations on configurations.
"""
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.infra.db.models.configuration import Configuration
from prompt_rater.infra.db.models.generation_run import GenerationRun
from prompt_rater.infra.db.models.prompt_instance import PromptInstance
from prompt_rater.infra.db.repositories.base import BaseRepository


class ConfigurationRepository(BaseRepository[Configuration]):
    """Repository for Configuration CRUD operations."""

    def __init__(self, session: AsyncSession, tenant_id: Optional[str] = None):
        super().__init__(Configuration, session, tenant_id)

    async def get_for_update(self, id: str) -> Optional[Configuration]:
        """Get a configuration and lock its row until the transaction ends.

        Serializes lifecycle transitions on the same configuration. SQLite
        ignores FOR UPDATE; the active-run unique index covers it there.
        """
        stmt = select(Configuration).where(Configuration.id == id).with_for_update()
        stmt = self._apply_tenant_filter(stmt)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_with_counts(self) -> Sequence[tuple[Configuration, int, int]]:
        """List configurations newest first with instance and run counts."""
        instance_counts = (
            select(PromptInstance.configuration_id, func.count(PromptInstance.id).label("n"))
            .group_by(PromptInstance.configuration_id)
            .subquery()
        )
        run_counts = (
            select(GenerationRun.configuration_id, func.count(GenerationRun.id).label("n"))
            .group_by(GenerationRun.configuration_id)
            .subquery()
        )
        stmt = (
            select(
                Configuration,
                func.coalesce(instance_counts.c.n, 0),
                func.coalesce(run_counts.c.n, 0),
            )
            .outerjoin(instance_counts, instance_counts.c.configuration_id == Configuration.id)
            .outerjoin(run_counts, run_counts.c.configuration_id == Configuration.id)
            .order_by(Configuration.created_at.desc())
        )
        stmt = self._apply_tenant_filter(stmt)
        result = await self.session.execute(stmt)
        return [(row[0], row[1], row[2]) for row in result.all()]

    async def set_status(self, config: Configuration, status: str) -> Configuration:
        config.status = status
        await self.session.flush()
        return config
