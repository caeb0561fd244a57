from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from ecoquest_api.core.settings import settings


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_redeem_and_cancel_flow(app_with_db, seed, event_sink) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        user = await seed.user(session, "member@example.com")
        await seed.balance(session, user.id, 100)
        reward = await seed.reward(session, points_cost=60, quantity=1)
        await session.commit()

    headers = {"X-Session-User": str(user.id)}
    async with _client(app) as client:
        detail = await client.get(f"/api/v1/rewards/{reward.id}")
        assert detail.status_code == 200
        assert detail.json()["remaining"] == 1
        assert detail.json()["sponsorName"] == "GreenCo"

        redeem = await client.post(f"/api/v1/rewards/{reward.id}/redeem", headers=headers)
        assert redeem.status_code == 201
        body = redeem.json()
        assert body["balance"] == 40
        assert body["redemption"]["status"] == "pending"
        assert body["redemption"]["pointsCost"] == 60
        redemption_id = body["redemption"]["id"]

        sold_out = await client.get(f"/api/v1/rewards/{reward.id}")
        assert sold_out.status_code == 409
        assert sold_out.json() == {"detail": "This reward is out of stock", "code": "out_of_stock"}

        balance = await client.get("/api/v1/points/me", headers=headers)
        assert balance.json() == {"userId": str(user.id), "points": 40, "lifetimePoints": 100}

        mine = await client.get("/api/v1/rewards/redemptions/mine", headers=headers)
        assert mine.status_code == 200
        assert [item["id"] for item in mine.json()["data"]] == [redemption_id]

        cancel = await client.post(f"/api/v1/rewards/redemptions/{redemption_id}/cancel")
        assert cancel.status_code == 200
        assert cancel.json()["refunded"] is True
        assert cancel.json()["balance"] == 100
        assert cancel.json()["redemption"]["status"] == "cancelled"

        again = await client.post(f"/api/v1/rewards/redemptions/{redemption_id}/cancel")
        assert again.status_code == 409
        assert again.json()["code"] == "invalid_state"

    assert "redemption.cancelled" in event_sink.types()


@pytest.mark.asyncio
async def test_redeem_error_responses(app_with_db, seed) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        user = await seed.user(session, "member@example.com")
        await seed.balance(session, user.id, 10)
        sponsor = await seed.sponsor(session)
        pricey = await seed.reward(session, sponsor=sponsor, title="Bike", points_cost=500)
        expired = await seed.reward(
            session,
            sponsor=sponsor,
            title="Old coupon",
            points_cost=5,
            expires_at=datetime.now(timezone.utc) - timedelta(days=1),
        )
        await session.commit()

    headers = {"X-Session-User": str(user.id)}
    async with _client(app) as client:
        poor = await client.post(f"/api/v1/rewards/{pricey.id}/redeem", headers=headers)
        assert poor.status_code == 402
        assert poor.json() == {
            "detail": "Insufficient points. You have 10, need 500",
            "code": "insufficient_funds",
        }

        stale = await client.post(f"/api/v1/rewards/{expired.id}/redeem", headers=headers)
        assert stale.status_code == 410
        assert stale.json()["code"] == "expired"

        missing = await client.post(f"/api/v1/rewards/{uuid4()}/redeem", headers=headers)
        assert missing.status_code == 404
        assert missing.json() == {"detail": "Reward not found", "code": "not_found"}

        anonymous = await client.post(f"/api/v1/rewards/{pricey.id}/redeem")
        assert anonymous.status_code == 401

        malformed = await client.post(
            f"/api/v1/rewards/{pricey.id}/redeem",
            headers={"X-Session-User": "not-a-uuid"},
        )
        assert malformed.status_code == 400


@pytest.mark.asyncio
async def test_cancel_without_refund_and_fulfill(app_with_db, seed, email_backend) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        user = await seed.user(session, "member@example.com", display_name="Sam")
        await seed.balance(session, user.id, 200)
        sponsor = await seed.sponsor(session)
        kept = await seed.reward(session, sponsor=sponsor, title="Tote bag", points_cost=50)
        handed = await seed.reward(session, sponsor=sponsor, title="Cinema ticket", points_cost=80)
        await session.commit()

    headers = {"X-Session-User": str(user.id)}
    async with _client(app) as client:
        first = (await client.post(f"/api/v1/rewards/{kept.id}/redeem", headers=headers)).json()
        second = (await client.post(f"/api/v1/rewards/{handed.id}/redeem", headers=headers)).json()

        cancel = await client.post(
            f"/api/v1/rewards/redemptions/{first['redemption']['id']}/cancel",
            json={"refund": False},
        )
        assert cancel.status_code == 200
        assert cancel.json()["refunded"] is False
        assert cancel.json()["balance"] is None

        fulfill = await client.post(f"/api/v1/rewards/redemptions/{second['redemption']['id']}/fulfill")
        assert fulfill.status_code == 200
        assert fulfill.json()["status"] == "fulfilled"
        assert fulfill.json()["fulfilledAt"] is not None

        balance = await client.get("/api/v1/points/me", headers=headers)
        assert balance.json()["points"] == 70

        pending = await client.get("/api/v1/rewards/redemptions", params={"status": "pending"})
        assert pending.json()["meta"]["total"] == 0

        stats = await client.get("/api/v1/rewards/stats")
        assert stats.status_code == 200
        assert stats.json()["redemptions"] == {"total": 2, "pending": 0, "fulfilled": 1, "cancelled": 1}

    assert [message["Subject"] for message in email_backend.sent_messages] == ["Your reward is ready: Cinema ticket"]


@pytest.mark.asyncio
async def test_list_rewards_paginates(app_with_db, seed) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        sponsor = await seed.sponsor(session)
        for index in range(3):
            await seed.reward(session, sponsor=sponsor, title=f"Reward {index}")
        await seed.reward(session, sponsor=sponsor, title="Hidden", is_active=False)
        await session.commit()

    async with _client(app) as client:
        response = await client.get("/api/v1/rewards", params={"activeOnly": "true", "limit": 2})

    assert response.status_code == 200
    payload = response.json()
    assert len(payload["data"]) == 2
    assert payload["meta"] == {
        "total": 3,
        "page": 1,
        "limit": 2,
        "lastPage": 2,
        "hasNextPage": True,
        "hasPrevPage": False,
    }


@pytest.mark.asyncio
async def test_admin_routes_require_api_key(app_with_db, seed) -> None:
    app, _ = app_with_db

    previous_key = settings.admin_api_key
    settings.admin_api_key = "ops-key"
    try:
        async with _client(app) as client:
            denied = await client.post(f"/api/v1/rewards/redemptions/{uuid4()}/fulfill")
            assert denied.status_code == 401

            wrong = await client.get("/api/v1/rewards/stats", headers={"X-API-Key": "nope"})
            assert wrong.status_code == 401

            allowed = await client.post(
                f"/api/v1/rewards/redemptions/{uuid4()}/fulfill",
                headers={"X-API-Key": "ops-key"},
            )
            assert allowed.status_code == 404
            assert allowed.json()["code"] == "not_found"
    finally:
        settings.admin_api_key = previous_key
