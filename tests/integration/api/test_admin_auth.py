import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_missing_admin_key_is_rejected(client: AsyncClient):
    response = await client.get("/security/events")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_wrong_admin_key_is_rejected(client: AsyncClient):
    response = await client.get(
        "/security/incidents", headers={"X-Admin-API-Key": "not-the-key"}
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_API_KEY"


@pytest.mark.asyncio
async def test_notification_routes_require_admin_key(client: AsyncClient):
    response = await client.get("/security/notification-preferences/user_1")

    assert response.status_code == 401
