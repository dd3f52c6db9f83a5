import pytest

from prompt_rater.config import get_settings

from tests.factories import TENANT_ID


@pytest.mark.asyncio
async def test_worker_endpoint_lifecycle(client):
    default_url = get_settings().worker_url

    initial = (await client.get("/api/v1/tenant/worker-endpoint")).json()
    assert initial["tenantId"] == TENANT_ID
    assert initial["workerUrl"] == default_url
    assert initial["isDefault"] is True

    updated = await client.put("/api/v1/tenant/worker-endpoint", json={"workerUrl": "https://w.example/run"})
    assert updated.status_code == 200
    assert updated.json()["workerUrl"] == "https://w.example/run"
    assert updated.json()["isDefault"] is False

    current = (await client.get("/api/v1/tenant/worker-endpoint")).json()
    assert current["workerUrl"] == "https://w.example/run"
    assert current["updatedAt"] is not None

    cleared = (await client.delete("/api/v1/tenant/worker-endpoint")).json()
    assert cleared["isDefault"] is True
    assert (await client.get("/api/v1/tenant/worker-endpoint")).json()["workerUrl"] == default_url


@pytest.mark.asyncio
async def test_worker_endpoint_must_be_http(client):
    response = await client.put("/api/v1/tenant/worker-endpoint", json={"workerUrl": "worker.local"})
    assert response.status_code == 400
