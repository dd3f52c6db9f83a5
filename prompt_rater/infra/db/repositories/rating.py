"""
Rating repository: matches, rater locks, responses and final winners.
"""
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from prompt_rater.infra.db.models.configuration import Configuration
from prompt_rater.infra.db.models.prompt_instance import PromptInstance
from prompt_rater.infra.db.models.rating import FinalWinner, RatingMatch, RatingResponse
from prompt_rater.infra.db.repositories.base import BaseRepository


def _for_rater():
    """Everything a rater needs to judge a match."""
    return (
        selectinload(RatingMatch.configuration),
        selectinload(RatingMatch.prompt_instance),
        selectinload(RatingMatch.option_a),
        selectinload(RatingMatch.option_b),
    )


class RatingMatchRepository(BaseRepository[RatingMatch]):
    """Repository for RatingMatch operations.

    Matches carry no tenant column; tenant scoping goes through the
    denormalized configuration id.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(RatingMatch, session)

    def _tenant_matches(self, tenant_id: str):
        return (
            select(RatingMatch)
            .join(Configuration, Configuration.id == RatingMatch.configuration_id)
            .where(Configuration.tenant_id == tenant_id)
        )

    async def count_for_instance(self, prompt_instance_id: str) -> int:
        stmt = select(func.count(RatingMatch.id)).where(RatingMatch.prompt_instance_id == prompt_instance_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def add_all(self, matches: Sequence[RatingMatch]) -> None:
        self.session.add_all(matches)
        await self.session.flush()

    async def get_for_tenant(self, id: str, tenant_id: str) -> Optional[RatingMatch]:
        """A match with its instance (and completions) loaded, if the tenant owns it."""
        stmt = (
            self._tenant_matches(tenant_id)
            .options(selectinload(RatingMatch.prompt_instance).selectinload(PromptInstance.completions))
            .where(RatingMatch.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_configuration(self, configuration_id: str) -> Sequence[RatingMatch]:
        """Matches newest first with instance, options, winner and responses loaded."""
        stmt = (
            select(RatingMatch)
            .options(
                selectinload(RatingMatch.prompt_instance),
                selectinload(RatingMatch.option_a),
                selectinload(RatingMatch.option_b),
                selectinload(RatingMatch.winner),
                selectinload(RatingMatch.responses),
            )
            .where(RatingMatch.configuration_id == configuration_id)
            .order_by(RatingMatch.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_for_instance(self, prompt_instance_id: str) -> Sequence[RatingMatch]:
        stmt = (
            select(RatingMatch)
            .where(RatingMatch.prompt_instance_id == prompt_instance_id)
            .order_by(RatingMatch.round.asc(), RatingMatch.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    # ------------------------------------------------------------------
    # Rater locks
    # ------------------------------------------------------------------

    async def find_held_lock(self, tenant_id: str, user_id: str, live_after: datetime) -> Optional[RatingMatch]:
        """An open match the user still holds a live lock on and has not rated."""
        stmt = (
            self._tenant_matches(tenant_id)
            .options(*_for_rater())
            .where(RatingMatch.is_complete.is_(False))
            .where(RatingMatch.locked_by == user_id)
            .where(RatingMatch.locked_at > live_after)
            .where(~RatingMatch.responses.any(RatingResponse.user_id == user_id))
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def release_stale_locks(self, user_id: str, live_after: datetime) -> int:
        stmt = (
            update(RatingMatch)
            .where(RatingMatch.locked_by == user_id)
            .where(RatingMatch.locked_at < live_after)
            .values(locked_by=None, locked_at=None)
        )
        return await self._bulk_write(stmt)

    async def list_available(
        self, tenant_id: str, user_id: str, live_after: datetime, limit: int = 10
    ) -> Sequence[RatingMatch]:
        """Open matches the user has not rated and nobody holds a live lock on."""
        stmt = (
            self._tenant_matches(tenant_id)
            .options(*_for_rater())
            .where(RatingMatch.is_complete.is_(False))
            .where(~RatingMatch.responses.any(RatingResponse.user_id == user_id))
            .where(or_(RatingMatch.locked_by.is_(None), RatingMatch.locked_at < live_after))
            .order_by(RatingMatch.created_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def try_lock(self, match: RatingMatch, user_id: str, now: datetime, live_after: datetime) -> bool:
        """Take (or refresh) the user's lock unless someone else holds a live one.

        The check and the write are one conditional UPDATE, so two raters
        racing for the same match cannot both win it.
        """
        stmt = (
            update(RatingMatch)
            .where(RatingMatch.id == match.id)
            .where(RatingMatch.is_complete.is_(False))
            .where(or_(
                RatingMatch.locked_by.is_(None),
                RatingMatch.locked_by == user_id,
                RatingMatch.locked_at < live_after,
            ))
            .values(locked_by=user_id, locked_at=now)
        )
        if await self._bulk_write(stmt) == 0:
            return False
        await self.session.refresh(match, ["locked_by", "locked_at"])
        return True

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    async def get_response(self, match_id: str, user_id: str) -> Optional[RatingResponse]:
        stmt = (
            select(RatingResponse)
            .where(RatingResponse.match_id == match_id)
            .where(RatingResponse.user_id == user_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_response(self, response: RatingResponse) -> RatingResponse:
        self.session.add(response)
        await self.session.flush()
        return response

    # ------------------------------------------------------------------
    # Bulk deletes
    # ------------------------------------------------------------------

    async def delete_responses_for_configuration(self, configuration_id: str) -> int:
        match_ids = select(RatingMatch.id).where(RatingMatch.configuration_id == configuration_id)
        return await self._bulk_delete(delete(RatingResponse).where(RatingResponse.match_id.in_(match_ids)))

    async def delete_for_configuration(self, configuration_id: str) -> int:
        return await self._bulk_delete(delete(RatingMatch).where(RatingMatch.configuration_id == configuration_id))

    async def delete_for_instance(self, prompt_instance_id: str) -> int:
        """Delete an instance's matches and their responses."""
        match_ids = select(RatingMatch.id).where(RatingMatch.prompt_instance_id == prompt_instance_id)
        await self._bulk_delete(delete(RatingResponse).where(RatingResponse.match_id.in_(match_ids)))
        return await self._bulk_delete(delete(RatingMatch).where(RatingMatch.prompt_instance_id == prompt_instance_id))

    async def delete_referencing(self, completion_ids: Sequence[str]) -> int:
        """Delete matches (and their responses) that point at any of the completions."""
        if not completion_ids:
            return 0
        ids = list(completion_ids)
        referencing = or_(
            RatingMatch.option_a_completion_id.in_(ids),
            RatingMatch.option_b_completion_id.in_(ids),
            RatingMatch.winner_completion_id.in_(ids),
        )
        match_ids = select(RatingMatch.id).where(referencing)
        await self._bulk_delete(delete(RatingResponse).where(RatingResponse.match_id.in_(match_ids)))
        return await self._bulk_delete(delete(RatingMatch).where(referencing))


class FinalWinnerRepository(BaseRepository[FinalWinner]):
    """Repository for FinalWinner operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(FinalWinner, session)

    async def get_for_instance(self, prompt_instance_id: str) -> Optional[FinalWinner]:
        stmt = select(FinalWinner).where(FinalWinner.prompt_instance_id == prompt_instance_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, prompt_instance_id: str, winning_completion_id: str) -> FinalWinner:
        """Record (or replace) the instance's winner."""
        winner = await self.get_for_instance(prompt_instance_id)
        if winner is None:
            winner = FinalWinner(prompt_instance_id=prompt_instance_id, winning_completion_id=winning_completion_id)
            self.session.add(winner)
        else:
            winner.winning_completion_id = winning_completion_id
            winner.determined_at = datetime.utcnow()
        await self.session.flush()
        return winner

    async def delete_for_configuration(self, configuration_id: str) -> int:
        instance_ids = select(PromptInstance.id).where(PromptInstance.configuration_id == configuration_id)
        return await self._bulk_delete(delete(FinalWinner).where(FinalWinner.prompt_instance_id.in_(instance_ids)))

    async def delete_for_instance(self, prompt_instance_id: str) -> int:
        return await self._bulk_delete(delete(FinalWinner).where(FinalWinner.prompt_instance_id == prompt_instance_id))

    async def delete_referencing(self, completion_ids: Sequence[str]) -> int:
        if not completion_ids:
            return 0
        stmt = delete(FinalWinner).where(FinalWinner.winning_completion_id.in_(list(completion_ids)))
        return await self._bulk_delete(stmt)
