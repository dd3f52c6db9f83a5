"""
Worker flow over HTTP: claim a batch, post completions, release failures.
"""
import pytest
from sqlalchemy import select

from prompt_rater.config import Settings, get_settings
from prompt_rater.infra.db.models import Configuration, PromptInstance, RatingMatch

from tests.factories import count_rows, make_config, make_instance, make_run


@pytest.fixture
def worker_secret(app):
    settings = Settings(worker_secret="s3cret")
    app.dependency_overrides[get_settings] = lambda: settings
    return {"Authorization": "Bearer s3cret"}


@pytest.mark.asyncio
async def test_claim_with_empty_queue(client):
    response = await client.post("/api/v1/worker/claim")
    assert response.status_code == 200
    assert response.json()["message"] == "No queued runs"
    assert response.json()["instances"] == []


@pytest.mark.asyncio
async def test_full_generation_cycle(client, session_factory):
    async with session_factory() as s:
        config = await make_config(s)
        instance = await make_instance(s, config, data={"question": "Can I change my address?"})
        await s.commit()

    run_id = (await client.post(f"/api/v1/configs/{config.id}/execute")).json()["runId"]

    claim = (await client.post("/api/v1/worker/claim")).json()
    assert claim["message"] == "Claimed 1 instance(s)"
    assert claim["run"]["id"] == run_id
    assert claim["run"]["status"] == "RUNNING"
    assert claim["configurationId"] == config.id
    assert claim["instances"] == [{
        "id": instance.id,
        "data": {"question": "Can I change my address?"},
        "prompt": "Answer the customer: Can I change my address?",
        "completionsNeeded": 2,
    }]

    url = f"/api/v1/worker/instances/{instance.id}/completions"
    first = await client.post(url, json={"output": "Yes, from settings.", "tokensUsed": 8})
    assert first.status_code == 201
    assert first.json()["index"] == 0
    assert first.json()["readyForRating"] is False

    second = (await client.post(url, json={"output": "Sure, contact support."})).json()
    assert second["index"] == 1
    assert second["readyForRating"] is True
    assert second["matchesCreated"] == 1
    assert second["runStatus"] == "COMPLETED"
    assert second["processedCount"] == 1

    late = await client.post(url, json={"output": "One more"})
    assert late.status_code == 400

    async with session_factory() as s:
        assert await count_rows(s, RatingMatch) == 1
        status = (await s.execute(select(Configuration.status).where(Configuration.id == config.id))).scalar_one()
        assert status == "COMPLETED"

    assert (await client.post("/api/v1/worker/claim")).json()["message"] == "No queued runs"


@pytest.mark.asyncio
async def test_claim_completes_drained_run(client, session_factory):
    async with session_factory() as s:
        config = await make_config(s, status="EXECUTING")
        await make_instance(s, config, status="READY_FOR_RATING")
        await make_run(s, config)
        await s.commit()

    claim = (await client.post("/api/v1/worker/claim")).json()

    assert claim["message"] == "Run completed - no pending instances"
    assert claim["run"]["status"] == "COMPLETED"


@pytest.mark.asyncio
async def test_release_instance(client, session_factory):
    async with session_factory() as s:
        config = await make_config(s, status="EXECUTING")
        instance = await make_instance(s, config, status="GENERATING")
        await s.commit()

    response = await client.post(
        f"/api/v1/worker/instances/{instance.id}/release", json={"error": "provider timeout"}
    )

    assert response.status_code == 200
    assert response.json() == {"instanceId": instance.id, "status": "PENDING"}
    async with session_factory() as s:
        assert await count_rows(s, PromptInstance, PromptInstance.status == "PENDING") == 1


@pytest.mark.asyncio
async def test_unknown_instance(client):
    response = await client.post("/api/v1/worker/instances/nope/completions", json={"output": "text"})
    assert response.status_code == 404


class TestWorkerSecret:

    @pytest.mark.asyncio
    async def test_missing_or_wrong_secret(self, client, worker_secret):
        assert (await client.post("/api/v1/worker/claim")).status_code == 401
        response = await client.post("/api/v1/worker/claim", headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_correct_secret(self, client, worker_secret):
        response = await client.post("/api/v1/worker/claim", headers=worker_secret)
        assert response.status_code == 200
