"""
Prompt instance and completion repositories.
"""
from collections import defaultdict
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from prompt_rater.infra.db.models.configuration import Configuration
from prompt_rater.infra.db.models.prompt_instance import Completion, PromptInstance
from prompt_rater.infra.db.models.rating import FinalWinner, RatingMatch
from prompt_rater.infra.db.repositories.base import BaseRepository


class PromptInstanceRepository(BaseRepository[PromptInstance]):
    """Repository for PromptInstance operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(PromptInstance, session)

    async def get_with_completions(self, id: str) -> Optional[PromptInstance]:
        stmt = (
            select(PromptInstance)
            .options(selectinload(PromptInstance.completions), selectinload(PromptInstance.configuration))
            .where(PromptInstance.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_tenant(self, id: str, tenant_id: str) -> Optional[PromptInstance]:
        """Instance with completions, if its configuration belongs to the tenant."""
        stmt = (
            select(PromptInstance)
            .join(Configuration, Configuration.id == PromptInstance.configuration_id)
            .options(selectinload(PromptInstance.completions), selectinload(PromptInstance.configuration))
            .where(PromptInstance.id == id)
            .where(Configuration.tenant_id == tenant_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_export(self, configuration_id: str) -> Sequence[PromptInstance]:
        """Instances oldest first with completions, matches (options, winner, responses) and final winner."""
        stmt = (
            select(PromptInstance)
            .options(
                selectinload(PromptInstance.completions),
                selectinload(PromptInstance.rating_matches).options(
                    selectinload(RatingMatch.option_a),
                    selectinload(RatingMatch.option_b),
                    selectinload(RatingMatch.winner),
                    selectinload(RatingMatch.responses),
                ),
                selectinload(PromptInstance.final_winner).selectinload(FinalWinner.winning_completion),
            )
            .where(PromptInstance.configuration_id == configuration_id)
            .order_by(PromptInstance.created_at.asc(), PromptInstance.id.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_by_status(
        self,
        configuration_id: str,
        statuses: Iterable[str],
        with_completions: bool = False,
        limit: Optional[int] = None,
    ) -> Sequence[PromptInstance]:
        """Instances of a configuration in any of the given statuses, oldest first."""
        stmt = (
            select(PromptInstance)
            .where(PromptInstance.configuration_id == configuration_id)
            .where(PromptInstance.status.in_(list(statuses)))
            .order_by(PromptInstance.created_at.asc(), PromptInstance.id.asc())
        )
        if with_completions:
            stmt = stmt.options(selectinload(PromptInstance.completions)).execution_options(populate_existing=True)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_by_ids(self, ids: Iterable[str]) -> Sequence[PromptInstance]:
        ids = list(ids)
        if not ids:
            return []
        result = await self.session.execute(select(PromptInstance).where(PromptInstance.id.in_(ids)))
        return result.scalars().all()

    async def list_not_in_status(self, configuration_id: str, status: str) -> Sequence[PromptInstance]:
        stmt = (
            select(PromptInstance)
            .where(PromptInstance.configuration_id == configuration_id)
            .where(PromptInstance.status != status)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_by_status(self, configuration_id: str, statuses: Iterable[str]) -> int:
        stmt = (
            select(func.count(PromptInstance.id))
            .where(PromptInstance.configuration_id == configuration_id)
            .where(PromptInstance.status.in_(list(statuses)))
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def status_counts(self, configuration_id: str) -> dict[str, int]:
        """Instance counts by status for one configuration."""
        grouped = await self.grouped_status_counts([configuration_id])
        return grouped.get(configuration_id, {})

    async def grouped_status_counts(self, configuration_ids: Iterable[str]) -> dict[str, dict[str, int]]:
        """Grouped count by configuration × status."""
        ids = list(configuration_ids)
        if not ids:
            return {}
        stmt = (
            select(PromptInstance.configuration_id, PromptInstance.status, func.count(PromptInstance.id))
            .where(PromptInstance.configuration_id.in_(ids))
            .group_by(PromptInstance.configuration_id, PromptInstance.status)
        )
        result = await self.session.execute(stmt)
        stats: dict[str, dict[str, int]] = defaultdict(dict)
        for configuration_id, status, count in result.all():
            stats[configuration_id][status] = count
        return dict(stats)

    async def list_with_counts(self, configuration_id: str, limit: Optional[int] = None) -> list[tuple[PromptInstance, int, int]]:
        """Instances newest first with completion and match counts."""
        completion_counts = (
            select(Completion.prompt_instance_id, func.count(Completion.id).label("n"))
            .group_by(Completion.prompt_instance_id)
            .subquery()
        )
        match_counts = (
            select(RatingMatch.prompt_instance_id, func.count(RatingMatch.id).label("n"))
            .group_by(RatingMatch.prompt_instance_id)
            .subquery()
        )
        stmt = (
            select(
                PromptInstance,
                func.coalesce(completion_counts.c.n, 0),
                func.coalesce(match_counts.c.n, 0),
            )
            .outerjoin(completion_counts, completion_counts.c.prompt_instance_id == PromptInstance.id)
            .outerjoin(match_counts, match_counts.c.prompt_instance_id == PromptInstance.id)
            .where(PromptInstance.configuration_id == configuration_id)
            .order_by(PromptInstance.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return [(row[0], row[1], row[2]) for row in result.all()]

    async def set_status(self, instances: Iterable[PromptInstance], status: str) -> int:
        """Move instances to a status. Returns how many changed."""
        changed = 0
        for instance in instances:
            if instance.status != status:
                instance.status = status
                changed += 1
        await self.session.flush()
        return changed


class CompletionRepository(BaseRepository[Completion]):
    """Repository for Completion operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Completion, session)

    def _for_configuration(self, configuration_id: str):
        return select(PromptInstance.id).where(PromptInstance.configuration_id == configuration_id)

    async def next_index(self, prompt_instance_id: str) -> int:
        stmt = select(func.max(Completion.index)).where(Completion.prompt_instance_id == prompt_instance_id)
        result = await self.session.execute(stmt)
        current = result.scalar_one_or_none()
        return 0 if current is None else current + 1

    async def recent_for_run(self, generation_run_id: str, limit: int = 10) -> Sequence[Completion]:
        stmt = (
            select(Completion)
            .where(Completion.generation_run_id == generation_run_id)
            .order_by(Completion.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def ids_for_run(self, generation_run_id: str) -> list[str]:
        stmt = select(Completion.id).where(Completion.generation_run_id == generation_run_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_for_configuration(self, configuration_id: str) -> int:
        stmt = delete(Completion).where(Completion.prompt_instance_id.in_(self._for_configuration(configuration_id)))
        return await self._bulk_delete(stmt)

    async def delete_for_instance(self, prompt_instance_id: str) -> int:
        return await self._bulk_delete(delete(Completion).where(Completion.prompt_instance_id == prompt_instance_id))

    async def delete_by_ids(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        return await self._bulk_delete(delete(Completion).where(Completion.id.in_(list(ids))))

    async def instance_ids_for_run(self, generation_run_id: str) -> list[str]:
        stmt = (
            select(Completion.prompt_instance_id)
            .where(Completion.generation_run_id == generation_run_id)
            .distinct()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
