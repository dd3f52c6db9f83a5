import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from prompt_rater.errors import NoPendingWorkError, NotFoundError, RunAlreadyInProgressError, ValidationError
from prompt_rater.infra.db.models import (
    Base,
    Completion,
    FinalWinner,
    GenerationRun,
    PromptInstance,
    RatingMatch,
    RatingResponse,
)
from prompt_rater.infra.db.session import configure_sqlite
from prompt_rater.services.lifecycle import LifecycleManager, get_instance_completions, get_ratings

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
)


class TestStartRun:

    @pytest.mark.asyncio
    async def test_queues_run_over_pending_instances(self, session):
        config = await make_config(session)
        await make_instances(session, config, 3)
        await make_instance(session, config, status="READY_FOR_RATING")

        run = await LifecycleManager(session, TENANT_ID).start_run(config.id)

        assert run.status == "QUEUED"
        assert run.total_instances == 3
        assert run.processed_count == 0
        assert run.provider == "OPENAI"
        assert run.model_name == "gpt-4"
        assert config.status == "EXECUTING"

    @pytest.mark.asyncio
    async def test_no_pending_instances_creates_no_run(self, session):
        config = await make_config(session)
        await make_instance(session, config, status="READY_FOR_RATING")

        with pytest.raises(NoPendingWorkError) as exc:
            await LifecycleManager(session, TENANT_ID).start_run(config.id)

        assert exc.value.status_code == 400
        assert await count_rows(session, GenerationRun) == 0
        assert config.status == "DRAFT"

    @pytest.mark.asyncio
    async def test_second_start_is_rejected(self, session):
        config = await make_config(session)
        await make_instances(session, config, 2)
        manager = LifecycleManager(session, TENANT_ID)
        await manager.start_run(config.id)

        with pytest.raises(RunAlreadyInProgressError):
            await manager.start_run(config.id)

        assert await count_rows(session, GenerationRun, GenerationRun.configuration_id == config.id) == 1

    @pytest.mark.asyncio
    async def test_executing_status_blocks_start_without_run_row(self, session):
        config = await make_config(session, status="EXECUTING")
        await make_instance(session, config)

        with pytest.raises(RunAlreadyInProgressError):
            await LifecycleManager(session, TENANT_ID).start_run(config.id)

    @pytest.mark.asyncio
    async def test_completed_configuration_needs_reset(self, session):
        config = await make_config(session, status="COMPLETED")
        await make_instance(session, config)

        with pytest.raises(ValidationError) as exc:
            await LifecycleManager(session, TENANT_ID).start_run(config.id)

        assert "Reset" in exc.value.message
        assert await count_rows(session, GenerationRun) == 0

    @pytest.mark.asyncio
    async def test_other_tenant_sees_not_found(self, session):
        config = await make_config(session)
        await make_instance(session, config)

        with pytest.raises(NotFoundError):
            await LifecycleManager(session, OTHER_TENANT_ID).start_run(config.id)

    @pytest.mark.asyncio
    async def test_failed_run_does_not_block_new_run(self, session):
        config = await make_config(session)
        await make_instance(session, config)
        await make_run(session, config, status="FAILED")

        run = await LifecycleManager(session, TENANT_ID).start_run(config.id)

        assert run.status == "QUEUED"


@pytest.mark.asyncio
async def test_database_rejects_second_active_run(session):
    config = await make_config(session)
    await make_run(session, config, status="RUNNING")

    with pytest.raises(IntegrityError):
        async with session.begin_nested():
            await make_run(session, config, status="QUEUED")

    # terminal runs are not constrained
    await make_run(session, config, status="FAILED")
    await make_run(session, config, status="COMPLETED")
    assert await count_rows(session, GenerationRun, GenerationRun.configuration_id == config.id) == 3


@pytest.mark.asyncio
async def test_run_history_newest_first_and_capped(session):
    config = await make_config(session)
    for i in range(12):
        await make_run(session, config, status="COMPLETED", created_at=BASE_TIME + timedelta(minutes=i))
    manager = LifecycleManager(session, TENANT_ID)

    history = await manager.get_run_history(config.id, limit=50)
    assert len(history) == 10
    assert history[0].created_at == BASE_TIME + timedelta(minutes=11)

    assert len(await manager.get_run_history(config.id, limit=3)) == 3
    assert len(await manager.get_run_history(config.id, limit=0)) == 1
    assert await LifecycleManager(session, OTHER_TENANT_ID).get_run_history(config.id) == []


class TestConfigurationCrud:

    @pytest.mark.asyncio
    async def test_create_applies_defaults(self, session):
        config = await LifecycleManager(session, TENANT_ID).create_configuration(
            created_by_id="admin-1", name="Greeting", prompt_template="Say hi to {{name}}"
        )

        assert config.tenant_id == TENANT_ID
        assert config.status == "DRAFT"
        assert config.model_provider == "OPENAI"
        assert config.model_name == "gpt-4"
        assert config.generations_per_instance == 2
        assert config.tags == []
        assert config.created_by_id == "admin-1"

    @pytest.mark.asyncio
    async def test_create_requires_name_and_template(self, session):
        manager = LifecycleManager(session, TENANT_ID)
        with pytest.raises(ValidationError):
            await manager.create_configuration(None, name="", prompt_template="x")
        with pytest.raises(ValidationError):
            await manager.create_configuration(None, name="x", prompt_template=None)

    @pytest.mark.asyncio
    async def test_generations_must_be_at_least_two(self, session):
        manager = LifecycleManager(session, TENANT_ID)
        with pytest.raises(ValidationError):
            await manager.create_configuration(None, name="x", prompt_template="y", generations_per_instance=1)

        config = await make_config(session)
        with pytest.raises(ValidationError):
            await manager.update_configuration(config.id, generations_per_instance=0)

    @pytest.mark.asyncio
    async def test_update_ignores_status(self, session):
        config = await make_config(session)

        updated = await LifecycleManager(session, TENANT_ID).update_configuration(
            config.id, name="Renamed", status="COMPLETED"
        )

        assert updated.name == "Renamed"
        assert updated.status == "DRAFT"

    @pytest.mark.asyncio
    async def test_list_is_tenant_scoped_with_counts(self, session):
        mine = await make_config(session)
        await make_instances(session, mine, 2)
        await make_run(session, mine, status="COMPLETED")
        await make_config(session, tenant_id=OTHER_TENANT_ID)

        rows = await LifecycleManager(session, TENANT_ID).list_configurations()

        assert len(rows) == 1
        config, instance_count, run_count = rows[0]
        assert config.id == mine.id
        assert (instance_count, run_count) == (2, 1)

    @pytest.mark.asyncio
    async def test_detail_counts_instances_by_status(self, session):
        config = await make_config(session)
        await make_instances(session, config, 2)
        await make_instance(session, config, status="READY_FOR_RATING")

        detail = await LifecycleManager(session, TENANT_ID).get_detail(config.id)

        assert detail.instance_stats == {"PENDING": 2, "READY_FOR_RATING": 1}
        assert detail.total_instances == 3
        assert detail.recent_runs == []


class TestAddInstances:

    @pytest.mark.asyncio
    async def test_reports_rows_missing_required_fields(self, session):
        config = await make_config(session, variables=[
            {"key": "question", "required": True},
            {"key": "tone", "required": True},
            {"key": "extra", "required": False},
        ])

        result = await LifecycleManager(session, TENANT_ID).add_instances(config.id, [
            {"question": "Q1", "tone": "calm"},
            {"question": "Q2"},
            {"question": " ", "tone": ""},
            {"question": "Q4", "tone": "brisk", "extra": 5, "undeclared": "dropped"},
        ])

        assert len(result.created) == 2
        assert result.errors == [
            "Row 2: Missing required fields: tone",
            "Row 3: Missing required fields: question, tone",
        ]
        assert result.created[1].data == {"question": "Q4", "tone": "brisk", "extra": "5"}
        assert all(i.status == "PENDING" for i in result.created)

    @pytest.mark.asyncio
    async def test_without_declared_variables_keeps_all_keys(self, session):
        config = await make_config(session, variables=[])

        result = await LifecycleManager(session, TENANT_ID).add_instances(config.id, [{"a": 1, "b": "two"}])

        assert result.errors == []
        assert result.created[0].data == {"a": "1", "b": "two"}


@pytest.mark.asyncio
async def test_ratings_overview_summarizes_matches(session):
    config = await make_config(session)
    instance = await make_instance(session, config, status="READY_FOR_RATING")
    c = await add_completions(session, instance, 4)
    first = await make_match(session, instance, c[0], c[1])
    second = await make_match(session, instance, c[2], c[3])
    second.is_complete = True
    await session.flush()
    await make_response(session, first, user_id="r1")
    await make_response(session, first, user_id="r2")

    overview = await get_ratings(session, TENANT_ID, config.id)

    assert overview.total_matches == 2
    assert overview.completed_matches == 1
    assert overview.pending_matches == 1
    assert overview.total_responses == 2
    assert overview.variables == config.variables

    with pytest.raises(NotFoundError):
        await get_ratings(session, OTHER_TENANT_ID, config.id)


@pytest.mark.asyncio
async def test_instance_completions_are_tenant_scoped(session):
    config = await make_config(session)
    instance = await make_instance(session, config)
    await add_completions(session, instance, 3)

    loaded = await get_instance_completions(session, TENANT_ID, instance.id)
    assert [c.index for c in loaded.completions] == [0, 1, 2]
    assert loaded.configuration.id == config.id

    with pytest.raises(NotFoundError):
        await get_instance_completions(session, OTHER_TENANT_ID, instance.id)


@pytest.mark.asyncio
async def test_racing_starts_queue_exactly_one_run(tmp_path):
    engine = configure_sqlite(create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}"))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async with factory() as s:
        config = await make_config(s)
        await make_instances(s, config, 2)
        await s.commit()

    async def attempt() -> str:
        async with factory() as s:
            try:
                await LifecycleManager(s, TENANT_ID).start_run(config.id)
                await s.commit()
                return "queued"
            except RunAlreadyInProgressError:
                await s.rollback()
                return "in-progress"

    try:
        outcomes = await asyncio.gather(*(attempt() for _ in range(5)))

        assert sorted(outcomes) == ["in-progress"] * 4 + ["queued"]
        async with factory() as s:
            assert await count_rows(s, GenerationRun, GenerationRun.configuration_id == config.id) == 1
    finally:
        await engine.dispose()


class TestInstances:

    @pytest.mark.asyncio
    async def test_detail_counts_completions_and_matches(self, session):
        config = await make_config(session)
        instance = await make_instance(session, config, status="READY_FOR_RATING")
        c = await add_completions(session, instance, 4)
        await make_match(session, instance, c[0], c[1])

        detail = await LifecycleManager(session, TENANT_ID).get_instance(instance.id)

        assert detail.instance.id == instance.id
        assert (detail.completion_count, detail.match_count) == (4, 1)
        with pytest.raises(NotFoundError):
            await LifecycleManager(session, OTHER_TENANT_ID).get_instance(instance.id)

    @pytest.mark.asyncio
    async def test_delete_removes_everything_generated_for_it(self, session):
        config = await make_config(session)
        instance = await make_instance(session, config, status="RATED")
        keep = await make_instance(session, config, status="READY_FOR_RATING")
        c = await add_completions(session, instance, 2)
        kept = await add_completions(session, keep, 2)
        match = await make_match(session, instance, c[0], c[1])
        await make_match(session, keep, kept[0], kept[1])
        await make_response(session, match)
        await make_winner(session, instance, c[0])

        deleted = await LifecycleManager(session, TENANT_ID).delete_instance(instance.id)

        assert deleted.configuration_id == config.id
        assert await count_rows(session, PromptInstance) == 1
        assert await count_rows(session, Completion) == 2
        assert await count_rows(session, RatingMatch) == 1
        assert await count_rows(session, RatingResponse) == 0
        assert await count_rows(session, FinalWinner) == 0

    @pytest.mark.asyncio
    async def test_generating_instance_cannot_be_deleted(self, session):
        config = await make_config(session, status="EXECUTING")
        instance = await make_instance(session, config, status="GENERATING")

        with pytest.raises(ValidationError) as exc:
            await LifecycleManager(session, TENANT_ID).delete_instance(instance.id)

        assert "Cancel the run" in exc.value.message
        assert await count_rows(session, PromptInstance) == 1

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_delete(self, session):
        config = await make_config(session)
        instance = await make_instance(session, config)

        with pytest.raises(NotFoundError):
            await LifecycleManager(session, OTHER_TENANT_ID).delete_instance(instance.id)
        assert await count_rows(session, PromptInstance) == 1
