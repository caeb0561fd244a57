from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from ecoquest_api.core.settings import settings
from ecoquest_api.observability.economy import EconomyObservabilityStore, get_economy_store


def test_store_snapshot_is_detached_from_live_counters() -> None:
    store = EconomyObservabilityStore()
    store.record_operation("redeem", "succeeded")
    store.record_operation("redeem", "out_of_stock")
    store.record_points("debited", 60)
    store.record_notification("published")

    snapshot = store.snapshot()
    store.record_operation("redeem", "succeeded")

    assert snapshot.operations == {"redeem": {"succeeded": 1, "out_of_stock": 1}}
    assert snapshot.as_dict()["points"] == {"debited": 60}

    store.reset()
    assert store.snapshot().operations == {}


@pytest.mark.asyncio
async def test_economy_snapshot_endpoint(app_with_db, seed) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        user = await seed.user(session, "member@example.com")
        await seed.balance(session, user.id, 10)
        reward = await seed.reward(session, points_cost=60)
        await session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post(f"/api/v1/rewards/{reward.id}/redeem", headers={"X-Session-User": str(user.id)})
        response = await client.get("/api/v1/observability/economy")

    assert response.status_code == 200
    payload = response.json()
    assert payload["operations"]["redeem"] == {"insufficient_funds": 1}
    assert payload["points"] == {}
    assert get_economy_store().snapshot().operations["redeem"] == {"insufficient_funds": 1}


@pytest.mark.asyncio
async def test_economy_snapshot_requires_key(app_with_db) -> None:
    app, _ = app_with_db

    previous_key = settings.admin_api_key
    settings.admin_api_key = "snapshot-key"

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            denied = await client.get("/api/v1/observability/economy")
            allowed = await client.get("/api/v1/observability/economy", headers={"X-API-Key": "snapshot-key"})
        assert denied.status_code == 401
        assert allowed.status_code == 200
    finally:
        settings.admin_api_key = previous_key
