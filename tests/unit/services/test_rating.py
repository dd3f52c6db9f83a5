import random
from datetime import datetime, timedelta

import pytest

from prompt_rater.errors import ConflictError, NotFoundError, ValidationError
from prompt_rater.infra.db.models import FinalWinner, RatingMatch, RatingResponse
from prompt_rater.services.rating import LOCK_TIMEOUT, RatingService

from tests.factories import (
    OTHER_TENANT_ID,
    TENANT_ID,
    add_completions,
    count_rows,
    make_config,
    make_instance,
    make_match,
    make_response,
    scalar,
)


def rater(session, user_id="rater-1", tenant_id=TENANT_ID):
    return RatingService(session, tenant_id, user_id, rng=random.Random(7))


async def open_match(session, n=2):
    config = await make_config(session, status="COMPLETED")
    instance = await make_instance(session, config, status="READY_FOR_RATING")
    completions = await add_completions(session, instance, n)
    match = await make_match(session, instance, completions[0], completions[1])
    return instance, completions, match


class TestNextMatch:

    @pytest.mark.asyncio
    async def test_locks_match_to_rater(self, session):
        instance, completions, match = await open_match(session)
        before = datetime.utcnow()

        assignment = await rater(session).next_match()

        assert assignment.match.id == match.id
        assert assignment.match.locked_by == "rater-1"
        assert assignment.lock_expires_at >= before + LOCK_TIMEOUT
        assert assignment.match.option_a.output == "candidate 0"
        assert assignment.match.configuration.id == instance.configuration_id

    @pytest.mark.asyncio
    async def test_held_match_is_handed_back(self, session):
        await open_match(session)
        first = await rater(session).next_match()
        await make_match(session, first.match.prompt_instance, first.match.option_b, first.match.option_a, round=2)

        again = await rater(session).next_match()

        assert again.match.id == first.match.id

    @pytest.mark.asyncio
    async def test_live_lock_hides_match_from_other_raters(self, session):
        await open_match(session)
        await rater(session, "rater-1").next_match()

        assignment = await rater(session, "rater-2").next_match()

        assert assignment.match is None
        assert assignment.lock_expires_at is None

    @pytest.mark.asyncio
    async def test_expired_lock_is_reclaimed(self, session):
        _, _, match = await open_match(session)
        match.locked_by = "rater-1"
        match.locked_at = datetime.utcnow() - LOCK_TIMEOUT - timedelta(minutes=1)
        await session.flush()

        assignment = await rater(session, "rater-2").next_match()

        assert assignment.match.id == match.id
        assert assignment.match.locked_by == "rater-2"

    @pytest.mark.asyncio
    async def test_skips_rated_and_completed_matches(self, session):
        instance, c, mine = await open_match(session, n=4)
        done = await make_match(session, instance, c[2], c[3])
        done.is_complete = True
        await session.flush()
        await make_response(session, mine, user_id="rater-1")

        assert (await rater(session).next_match()).match is None
        assert (await rater(session, "rater-2").next_match()).match.id == mine.id

    @pytest.mark.asyncio
    async def test_other_tenant_sees_nothing(self, session):
        await open_match(session)

        assert (await rater(session, tenant_id=OTHER_TENANT_ID).next_match()).match is None


class TestSubmit:

    @pytest.mark.asyncio
    async def test_final_match_records_winner(self, session):
        instance, completions, match = await open_match(session)
        await rater(session).next_match()

        result = await rater(session).submit(match.id, "B_BETTER", reasons=["clearer"], notes="tighter")

        assert result.match.is_complete
        assert result.match.outcome == "B_BETTER"
        assert result.match.winner_completion_id == completions[1].id
        assert result.match.locked_by is None
        assert result.final_winner_id == completions[1].id
        assert result.instance_status == "RATED"
        assert result.response.reasons == ["clearer"]
        assert await scalar(session, FinalWinner.winning_completion_id,
                            FinalWinner.prompt_instance_id == instance.id) == completions[1].id

    @pytest.mark.asyncio
    async def test_winner_meets_bye_in_next_round(self, session):
        instance, c, match = await open_match(session, n=3)

        result = await rater(session).submit(match.id, "A_BETTER")

        assert result.next_round_matches == 1
        assert result.instance_status == "READY_FOR_RATING"
        assert result.final_winner_id is None
        second = await scalar(session, RatingMatch, RatingMatch.round == 2)
        assert (second.option_a_completion_id, second.option_b_completion_id) == (c[0].id, c[2].id)

        final = await rater(session, "rater-2").submit(second.id, "B_BETTER")

        assert final.final_winner_id == c[2].id
        assert final.instance_status == "RATED"

    @pytest.mark.asyncio
    async def test_tie_rates_instance_without_winner(self, session):
        instance, _, match = await open_match(session)

        result = await rater(session).submit(match.id, "BOTH_GOOD")

        assert result.match.winner_completion_id is None
        assert result.instance_status == "RATED"
        assert result.final_winner_id is None
        assert await count_rows(session, FinalWinner) == 0

    @pytest.mark.asyncio
    async def test_unknown_outcome(self, session):
        _, _, match = await open_match(session)

        with pytest.raises(ValidationError) as exc:
            await rater(session).submit(match.id, "MAYBE")

        assert exc.value.message == "Invalid outcome"
        assert await count_rows(session, RatingResponse) == 0

    @pytest.mark.asyncio
    async def test_completed_match_cannot_be_rated_again(self, session):
        _, _, match = await open_match(session)
        await rater(session).submit(match.id, "A_BETTER")

        with pytest.raises(ConflictError) as exc:
            await rater(session, "rater-2").submit(match.id, "B_BETTER")

        assert exc.value.status_code == 409
        assert await count_rows(session, RatingResponse) == 1

    @pytest.mark.asyncio
    async def test_match_locked_by_another_rater(self, session):
        _, _, match = await open_match(session)
        await rater(session, "rater-2").next_match()

        with pytest.raises(ConflictError) as exc:
            await rater(session).submit(match.id, "A_BETTER")

        assert "another user" in exc.value.message
        assert not match.is_complete

    @pytest.mark.asyncio
    async def test_expired_lock_of_another_rater_is_taken_over(self, session):
        _, _, match = await open_match(session)
        match.locked_by = "rater-2"
        match.locked_at = datetime.utcnow() - timedelta(minutes=30)
        await session.flush()

        result = await rater(session).submit(match.id, "A_BETTER")

        assert result.response.user_id == "rater-1"

    @pytest.mark.asyncio
    async def test_rater_answers_a_match_once(self, session):
        _, _, match = await open_match(session)
        await make_response(session, match, user_id="rater-1")

        with pytest.raises(ValidationError) as exc:
            await rater(session).submit(match.id, "A_BETTER")

        assert exc.value.message == "You have already rated this match"

    @pytest.mark.asyncio
    async def test_other_tenant_gets_not_found(self, session):
        _, _, match = await open_match(session)

        with pytest.raises(NotFoundError):
            await rater(session, tenant_id=OTHER_TENANT_ID).submit(match.id, "A_BETTER")
