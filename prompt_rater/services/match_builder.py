"""
Tournament match builder.

Seeds Round 1 of a single-elimination bracket for one prompt instance.
Completions are paired strictly in ascending ``index`` order so the same
completion set always produces the same bracket:

    2 completions  -> (0 vs 1)
    3 completions  -> (0 vs 1); completion 2 gets a bye
    n >= 4         -> (0 vs 1), (2 vs 3), ...; an odd trailer gets a bye

Later rounds are planned by ``resolve_bracket`` once every match of the
current round is rated: winners advance in bracket order, followed by the
round's bye. A tie (BOTH_GOOD or NEITHER_GOOD) advances nobody, and a bye
only advances when its round produced at least one winner.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.errors import DuplicateBracketError
from prompt_rater.infra.db.models import Completion, PromptInstance, RatingMatch
from prompt_rater.infra.db.repositories import RatingMatchRepository

logger = logging.getLogger(__name__)

MIN_COMPLETIONS_FOR_RATING = 2
FIRST_ROUND = 1


@dataclass
class MatchCounter:
    """Running total of matches created, shared across calls for reporting."""
    created: int = 0
    instances: list[str] = field(default_factory=list)

    def add(self, instance_id: str, n: int) -> None:
        if n > 0:
            self.created += n
            self.instances.append(instance_id)


@dataclass
class BracketState:
    """Where an instance's tournament stands.

    Exactly one of these holds: ``pairs`` lists the matches of
    ``next_round`` still to be created; ``decided`` is set (with
    ``winner_id`` None when every final match was a tie); or neither,
    meaning a match of the current round is still waiting for a rating.
    """
    next_round: Optional[int] = None
    pairs: list[tuple[str, str]] = field(default_factory=list)
    decided: bool = False
    winner_id: Optional[str] = None


def is_rateable(completion_count: int) -> bool:
    """An instance can enter a tournament once it has two candidates."""
    return completion_count >= MIN_COMPLETIONS_FOR_RATING


def _consecutive_pairs(items: Sequence) -> list[tuple]:
    return [(items[i], items[i + 1]) for i in range(0, len(items) - 1, 2)]


def plan_bracket(completions: Sequence[Completion]) -> list[tuple[Completion, Completion]]:
    """Round-1 pairs for a completion set, without touching the database.

    Pairs are consecutive in ascending ``index``; the input order is ignored.
    """
    if not is_rateable(len(completions)):
        return []
    return _consecutive_pairs(sorted(completions, key=lambda c: c.index))


def resolve_bracket(completions: Sequence[Completion], matches: Sequence[RatingMatch]) -> BracketState:
    """Replay an instance's matches round by round and report what comes next."""
    if not is_rateable(len(completions)):
        return BracketState()

    entrants = [c.id for c in sorted(completions, key=lambda c: c.index)]
    round_no = FIRST_ROUND
    while len(entrants) >= MIN_COMPLETIONS_FOR_RATING:
        current = [m for m in matches if m.round == round_no]
        if not current:
            return BracketState(next_round=round_no, pairs=_consecutive_pairs(entrants))
        if not all(m.is_complete for m in current):
            return BracketState()

        seat = {completion_id: i for i, completion_id in enumerate(entrants)}
        current.sort(key=lambda m: seat.get(m.option_a_completion_id, len(seat)))
        paired = {cid for m in current for cid in (m.option_a_completion_id, m.option_b_completion_id)}
        winners = [m.winner_completion_id for m in current if m.winner_completion_id]
        byes = [cid for cid in entrants if cid not in paired]
        entrants = winners + byes if winners else []
        round_no += 1

    return BracketState(decided=True, winner_id=entrants[0] if entrants else None)


class MatchBuilder:
    """Creates rating matches for instances, at most once per round."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.matches = RatingMatchRepository(session)

    async def build_matches(
        self,
        instance: PromptInstance,
        completions: Optional[Sequence[Completion]] = None,
        counter: Optional[MatchCounter] = None,
    ) -> int:
        """Seed the instance's bracket. Returns the number of matches created.

        ``completions`` defaults to the instance's loaded ``completions``
        relationship. Ineligible instances (fewer than two completions) and
        instances that already have matches create nothing.
        """
        if completions is None:
            completions = instance.completions

        pairs = plan_bracket(completions)
        if not pairs:
            logger.debug(f"Instance {instance.id} not eligible for rating ({len(completions)} completion(s))")
            return 0

        if await self.matches.count_for_instance(instance.id) > 0:
            return 0

        created = await self.seed_round(instance, FIRST_ROUND, [(a.id, b.id) for a, b in pairs])
        if counter is not None:
            counter.add(instance.id, created)
        return created

    async def seed_round(self, instance: PromptInstance, round_no: int, pairs: Sequence[tuple[str, str]]) -> int:
        """Insert one round of matches; 0 when another request already seeded it."""
        try:
            created = await self._insert_round(instance, round_no, pairs)
        except DuplicateBracketError:
            logger.info(f"Round {round_no} for instance {instance.id} was seeded concurrently; skipping")
            return 0
        logger.info(f"Seeded {created} round-{round_no} match(es) for instance {instance.id}")
        return created

    async def _insert_round(self, instance: PromptInstance, round_no: int, pairs: Sequence[tuple[str, str]]) -> int:
        """Insert all pairs atomically; a duplicate seed rolls back only this savepoint."""
        matches = [
            RatingMatch(
                prompt_instance_id=instance.id,
                configuration_id=instance.configuration_id,
                round=round_no,
                option_a_completion_id=a,
                option_b_completion_id=b,
                is_complete=False,
            )
            for a, b in pairs
        ]
        try:
            async with self.session.begin_nested():
                await self.matches.add_all(matches)
        except IntegrityError as e:
            raise DuplicateBracketError() from e
        return len(matches)
