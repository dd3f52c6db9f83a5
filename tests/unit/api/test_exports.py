import pytest

from tests.factories import OTHER_TENANT_ID, add_completions, make_config, make_instance, make_match, make_response


async def seed_rated(session_factory):
    async with session_factory() as s:
        config = await make_config(s, name="Support replies", status="COMPLETED")
        instance = await make_instance(s, config, status="READY_FOR_RATING")
        c = await add_completions(s, instance, 2)
        match = await make_match(s, instance, c[0], c[1])
        await make_response(s, match, user_id="rater-1", outcome="A_BETTER")
        await s.commit()
    return config, instance, c


@pytest.mark.asyncio
async def test_json_export(client, session_factory):
    config, instance, c = await seed_rated(session_factory)

    response = await client.get(f"/api/v1/exports/{config.id}")

    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="Support_replies_export.json"'
    body = response.json()
    assert body["configuration"]["name"] == "Support replies"
    assert body["configuration"]["variables"][0]["key"] == "question"
    assert (body["totalInstances"], body["totalCompletions"], body["totalMatches"]) == (1, 2, 1)
    assert body["completedMatches"] == 0
    exported = body["instances"][0]
    assert exported["id"] == instance.id
    assert [x["index"] for x in exported["completions"]] == [0, 1]
    assert exported["ratingMatches"][0]["optionA"]["outputPreview"] == "candidate 0"
    assert exported["ratingMatches"][0]["responses"][0]["userId"] == "rater-1"
    assert exported["finalWinner"] is None


@pytest.mark.asyncio
async def test_csv_export(client, session_factory):
    config, instance, _ = await seed_rated(session_factory)

    response = await client.get(f"/api/v1/exports/{config.id}", params={"format": "csv"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == 'attachment; filename="Support_replies_export.csv"'
    lines = response.text.splitlines()
    assert lines[0].startswith("instance_id,question,instance_status")
    assert lines[1].startswith(f"{instance.id},Where is my order?,READY_FOR_RATING,2,1")


@pytest.mark.asyncio
async def test_export_errors(client, session_factory):
    async with session_factory() as s:
        foreign = await make_config(s, tenant_id=OTHER_TENANT_ID)
        mine = await make_config(s)
        await s.commit()

    assert (await client.get(f"/api/v1/exports/{foreign.id}")).status_code == 404
    assert (await client.get(f"/api/v1/exports/{mine.id}", params={"format": "xml"})).status_code == 422
    assert (await client.get(f"/api/v1/exports/{mine.id}", headers={"X-User-Role": "USER"})).status_code == 403
