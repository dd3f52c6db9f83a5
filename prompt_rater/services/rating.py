"""
Rater workflow: hand out matches under a short lock and record verdicts.

A rater asks for work and gets one open match of their tenant that they have
not rated yet, locked to them for five minutes. Submitting a verdict
completes the match and advances the instance's bracket: the next round is
seeded once the current round is fully rated, and when a single completion
is left standing it becomes the final winner and the instance is RATED.
"""
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.errors import ConflictError, NotFoundError, ValidationError
from prompt_rater.infra.db.models import (
    PromptInstance,
    PromptInstanceStatus,
    RatingMatch,
    RatingOutcome,
    RatingResponse,
)
from prompt_rater.infra.db.repositories import (
    FinalWinnerRepository,
    PromptInstanceRepository,
    RatingMatchRepository,
)
from prompt_rater.services.match_builder import MatchBuilder, resolve_bracket

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = timedelta(minutes=5)
CANDIDATE_POOL = 10
LOCK_ATTEMPTS = 3


@dataclass
class MatchAssignment:
    match: Optional[RatingMatch] = None
    lock_expires_at: Optional[datetime] = None


@dataclass
class SubmissionResult:
    response: RatingResponse
    match: RatingMatch
    instance_status: str
    next_round_matches: int = 0
    final_winner_id: Optional[str] = None


def parse_outcome(value: Optional[str]) -> RatingOutcome:
    try:
        return RatingOutcome(value)
    except ValueError:
        raise ValidationError("Invalid outcome")


def winner_for(match: RatingMatch, outcome: RatingOutcome) -> Optional[str]:
    """Completion that wins the match; ties have none."""
    if outcome == RatingOutcome.A_BETTER:
        return match.option_a_completion_id
    if outcome == RatingOutcome.B_BETTER:
        return match.option_b_completion_id
    return None


class RatingService:
    """One rater's view of their tenant's open matches."""

    def __init__(self, session: AsyncSession, tenant_id: str, user_id: str, rng: Optional[random.Random] = None):
        self.session = session
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.matches = RatingMatchRepository(session)
        self.winners = FinalWinnerRepository(session)
        self.instances = PromptInstanceRepository(session)
        self.match_builder = MatchBuilder(session)
        self._rng = rng or random.Random()

    async def next_match(self) -> MatchAssignment:
        """The rater's current match, or a random open one locked to them.

        A live lock the rater already holds is refreshed and handed back, so
        reloading the page does not skip work. Otherwise the rater's expired
        locks are dropped and one of the oldest available matches is taken.
        """
        now = datetime.utcnow()
        live_after = now - LOCK_TIMEOUT

        held = await self.matches.find_held_lock(self.tenant_id, self.user_id, live_after)
        if held is not None and await self.matches.try_lock(held, self.user_id, now, live_after):
            return MatchAssignment(match=held, lock_expires_at=now + LOCK_TIMEOUT)

        await self.matches.release_stale_locks(self.user_id, live_after)

        for _ in range(LOCK_ATTEMPTS):
            candidates = await self.matches.list_available(
                self.tenant_id, self.user_id, live_after, limit=CANDIDATE_POOL
            )
            if not candidates:
                break
            chosen = self._rng.choice(candidates)
            if await self.matches.try_lock(chosen, self.user_id, now, live_after):
                logger.info(f"[RATING] Match {chosen.id} locked by {self.user_id}")
                return MatchAssignment(match=chosen, lock_expires_at=now + LOCK_TIMEOUT)
            logger.info(f"[RATING] Lost lock race on match {chosen.id}; retrying")

        return MatchAssignment()

    async def submit(
        self,
        match_id: str,
        outcome: Optional[str],
        reasons: Optional[Sequence[str]] = None,
        notes: Optional[str] = None,
    ) -> SubmissionResult:
        """Record the rater's verdict and advance the bracket.

        Raises:
            ValidationError: unknown outcome, or the rater already answered this match
            NotFoundError: match missing or owned by another tenant
            ConflictError: match already rated, or locked by another rater
        """
        verdict = parse_outcome(outcome)

        match = await self.matches.get_for_tenant(match_id, self.tenant_id)
        if match is None:
            raise NotFoundError("Match not found")
        if match.is_complete:
            raise ConflictError("This match has already been rated")
        if await self.matches.get_response(match.id, self.user_id) is not None:
            raise ValidationError("You have already rated this match")

        now = datetime.utcnow()
        live_after = now - LOCK_TIMEOUT
        lock_is_live = match.locked_at is not None and match.locked_at > live_after
        if lock_is_live and match.locked_by not in (None, self.user_id):
            raise ConflictError("This match is currently being rated by another user")
        if not (lock_is_live and match.locked_by == self.user_id):
            # Expired or never taken: claim it before writing
            if not await self.matches.try_lock(match, self.user_id, now, live_after):
                raise ConflictError("Your session expired and this match was assigned to another user")

        response = RatingResponse(
            match_id=match.id,
            user_id=self.user_id,
            outcome=verdict.value,
            reasons=list(reasons or []),
            notes=notes,
        )
        try:
            async with self.session.begin_nested():
                await self.matches.add_response(response)
        except IntegrityError as e:
            raise ValidationError("You have already rated this match") from e

        match.outcome = verdict.value
        match.winner_completion_id = winner_for(match, verdict)
        match.is_complete = True
        match.locked_by = None
        match.locked_at = None
        await self.session.flush()

        result = SubmissionResult(response=response, match=match, instance_status=match.prompt_instance.status)
        await self._advance(match.prompt_instance, result)
        logger.info(
            f"[RATING] Match {match.id} rated {verdict.value} by {self.user_id}: "
            f"next_round_matches={result.next_round_matches} instance={result.instance_status}"
        )
        return result

    async def _advance(self, instance: PromptInstance, result: SubmissionResult) -> None:
        matches = await self.matches.list_for_instance(instance.id)
        state = resolve_bracket(instance.completions, matches)

        if state.pairs:
            result.next_round_matches = await self.match_builder.seed_round(instance, state.next_round, state.pairs)
        elif state.decided:
            if state.winner_id:
                await self.winners.upsert(instance.id, state.winner_id)
                result.final_winner_id = state.winner_id
            await self.instances.set_status([instance], PromptInstanceStatus.RATED.value)
        result.instance_status = instance.status
