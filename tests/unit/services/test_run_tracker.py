from datetime import timedelta

import pytest

from prompt_rater.errors import NotFoundError, RunAlreadyInProgressError, ValidationError
from prompt_rater.infra.db.models import (
    Completion,
    Configuration,
    FinalWinner,
    GenerationRun,
    PromptInstance,
    RatingMatch,
    RatingResponse,
)
from prompt_rater.services.run_tracker import RunTracker

from tests.factories import (
    BASE_TIME,
    OTHER_TENANT_ID,
    TENANT_ID,
    add_completions,
    count_rows,
    make_config,
    make_instance,
    make_instances,
    make_match,
    make_response,
    make_run,
    make_winner,
    scalar,
)


class TestQueueSnapshot:

    @pytest.mark.asyncio
    async def test_snapshot_counts_runs_and_live_instances(self, session):
        active = await make_config(session, status="EXECUTING")
        await make_instances(session, active, 2)
        await make_instance(session, active, status="GENERATING")
        await make_instance(session, active, status="READY_FOR_RATING")
        running = await make_run(session, active, status="RUNNING", total_instances=4, processed_count=1,
                                 created_at=BASE_TIME + timedelta(minutes=2))
        await make_run(session, active, status="FAILED", created_at=BASE_TIME)

        done = await make_config(session, name="Done", status="COMPLETED")
        await make_instance(session, done, status="PENDING")
        await make_run(session, done, status="COMPLETED", created_at=BASE_TIME + timedelta(minutes=1))

        foreign = await make_config(session, tenant_id=OTHER_TENANT_ID)
        await make_run(session, foreign, status="QUEUED")

        snapshot = await RunTracker(session, TENANT_ID).get_queue_snapshot()

        assert [s.run.status for s in snapshot.runs] == ["RUNNING", "COMPLETED", "FAILED"]
        first = snapshot.runs[0]
        assert first.run.id == running.id
        assert first.progress == 25
        assert first.instance_stats == {"PENDING": 2, "GENERATING": 1, "READY_FOR_RATING": 1}
        # only configurations with an active run report stats
        assert snapshot.runs[1].instance_stats == {}

        summary = snapshot.summary
        assert (summary.queued_runs, summary.running_runs, summary.completed_runs, summary.failed_runs) == (0, 1, 1, 1)
        assert summary.total_pending_instances == 2
        assert summary.total_generating_instances == 1

    @pytest.mark.asyncio
    async def test_empty_tenant(self, session):
        snapshot = await RunTracker(session, TENANT_ID).get_queue_snapshot()
        assert snapshot.runs == []
        assert snapshot.summary.queued_runs == 0


@pytest.mark.asyncio
async def test_run_detail_limits_recent_completions(session):
    config = await make_config(session)
    run = await make_run(session, config, status="RUNNING", total_instances=6)
    for instance in await make_instances(session, config, 6, status="GENERATING"):
        await add_completions(session, instance, 2, run=run)

    detail = await RunTracker(session, TENANT_ID).get_run_detail(run.id)

    assert detail.run.id == run.id
    assert len(detail.recent_completions) == 10
    assert detail.instance_stats == {"GENERATING": 6}

    with pytest.raises(NotFoundError):
        await RunTracker(session, OTHER_TENANT_ID).get_run_detail(run.id)


class TestCancelRun:

    @pytest.mark.asyncio
    async def test_cancel_releases_generating_instances(self, session):
        config = await make_config(session, status="EXECUTING")
        await make_instance(session, config, status="GENERATING")
        await make_instance(session, config, status="READY_FOR_RATING")
        run = await make_run(session, config, status="RUNNING")

        cancelled = await RunTracker(session, TENANT_ID).cancel_run(run.id)

        assert cancelled.status == "FAILED"
        assert cancelled.error_message == "Cancelled by admin"
        assert cancelled.completed_at is not None
        assert await count_rows(session, PromptInstance, PromptInstance.status == "GENERATING") == 0
        assert await count_rows(session, PromptInstance, PromptInstance.status == "READY_FOR_RATING") == 1
        assert await scalar(session, Configuration.status, Configuration.id == config.id) == "DRAFT"

    @pytest.mark.asyncio
    async def test_terminal_run_cannot_be_cancelled(self, session):
        config = await make_config(session)
        run = await make_run(session, config, status="COMPLETED")

        with pytest.raises(ValidationError):
            await RunTracker(session, TENANT_ID).cancel_run(run.id)


class TestRetryRun:

    @pytest.mark.asyncio
    async def test_retry_requeues_failed_run(self, session):
        config = await make_config(session)
        run = await make_run(session, config, status="FAILED")
        run.error_message = "worker crashed"
        await session.flush()

        retried = await RunTracker(session, TENANT_ID).retry_run(run.id)

        assert retried.status == "QUEUED"
        assert retried.error_message is None
        assert retried.started_at is None
        assert config.status == "EXECUTING"

    @pytest.mark.asyncio
    async def test_retry_restarts_progress_from_pending_instances(self, session):
        config = await make_config(session)
        await make_instances(session, config, 3)
        await make_instance(session, config, status="READY_FOR_RATING")
        run = await make_run(session, config, status="FAILED", total_instances=5, processed_count=4)

        retried = await RunTracker(session, TENANT_ID).retry_run(run.id)

        assert retried.total_instances == 3
        assert retried.processed_count == 0
        assert retried.progress == 0

    @pytest.mark.asyncio
    async def test_only_failed_runs_are_retried(self, session):
        config = await make_config(session)
        run = await make_run(session, config, status="COMPLETED")

        with pytest.raises(ValidationError):
            await RunTracker(session, TENANT_ID).retry_run(run.id)

    @pytest.mark.asyncio
    async def test_retry_blocked_by_active_run(self, session):
        config = await make_config(session)
        failed = await make_run(session, config, status="FAILED")
        await make_run(session, config, status="QUEUED")

        with pytest.raises(RunAlreadyInProgressError):
            await RunTracker(session, TENANT_ID).retry_run(failed.id)

    @pytest.mark.asyncio
    async def test_retry_requires_draft_configuration(self, session):
        config = await make_config(session, status="COMPLETED")
        failed = await make_run(session, config, status="FAILED")

        with pytest.raises(ValidationError):
            await RunTracker(session, TENANT_ID).retry_run(failed.id)


class TestDeleteRun:

    @pytest.mark.asyncio
    async def test_delete_completed_run_removes_its_outputs(self, session):
        config = await make_config(session, status="COMPLETED")
        run = await make_run(session, config, status="COMPLETED")
        instance = await make_instance(session, config, status="READY_FOR_RATING")
        a, b = await add_completions(session, instance, 2, run=run)
        match = await make_match(session, instance, a, b)
        await make_response(session, match)
        await make_winner(session, instance, a)

        counts = await RunTracker(session, TENANT_ID).delete_run(run.id)

        assert counts == {
            "deleted_completions": 2,
            "deleted_matches": 1,
            "deleted_winners": 1,
            "reset_instances": 1,
        }
        for model in (GenerationRun, Completion, RatingMatch, RatingResponse, FinalWinner):
            assert await count_rows(session, model) == 0
        assert await scalar(session, PromptInstance.status, PromptInstance.id == instance.id) == "PENDING"
        assert await scalar(session, Configuration.status, Configuration.id == config.id) == "DRAFT"

    @pytest.mark.asyncio
    async def test_delete_active_run_releases_configuration(self, session):
        config = await make_config(session, status="EXECUTING")
        earlier = await make_run(session, config, status="COMPLETED")
        kept = await make_instance(session, config, status="READY_FOR_RATING")
        await add_completions(session, kept, 2, run=earlier)

        run = await make_run(session, config, status="RUNNING")
        partial = await make_instance(session, config, status="GENERATING")
        await add_completions(session, partial, 1, run=run)
        await make_instance(session, config, status="GENERATING")

        counts = await RunTracker(session, TENANT_ID).delete_run(run.id)

        assert counts["deleted_completions"] == 1
        assert counts["reset_instances"] == 2
        assert await count_rows(session, Completion) == 2
        assert await count_rows(session, GenerationRun) == 1
        assert await scalar(session, PromptInstance.status, PromptInstance.id == kept.id) == "READY_FOR_RATING"
        assert await count_rows(session, PromptInstance, PromptInstance.status == "GENERATING") == 0
        assert await scalar(session, Configuration.status, Configuration.id == config.id) == "DRAFT"

    @pytest.mark.asyncio
    async def test_delete_keeps_status_when_other_runs_remain(self, session):
        config = await make_config(session, status="COMPLETED")
        await make_run(session, config, status="COMPLETED")
        stale = await make_run(session, config, status="FAILED")

        await RunTracker(session, TENANT_ID).delete_run(stale.id)

        assert await scalar(session, Configuration.status, Configuration.id == config.id) == "COMPLETED"

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_delete(self, session):
        config = await make_config(session)
        run = await make_run(session, config, status="FAILED")

        with pytest.raises(NotFoundError):
            await RunTracker(session, OTHER_TENANT_ID).delete_run(run.id)
        assert await count_rows(session, GenerationRun) == 1
