import pytest
from httpx import AsyncClient


async def create_alert(client: AsyncClient, headers, **overrides):
    payload = {
        "user_id": "user_1",
        "organization_id": "org_1",
        "alert_type": "manual",
        "severity": "high",
        "title": "Unusual export volume",
        "description": "Raised by an operator",
    }
    payload.update(overrides)
    response = await client.post("/security/alerts", json=payload, headers=headers)
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_create_and_list_alerts(client: AsyncClient, admin_headers):
    alert = await create_alert(client, admin_headers)

    assert alert["id"].startswith("alert_")
    assert alert["is_resolved"] is False

    listed = await client.get(
        "/security/alerts", params={"unresolved_only": True}, headers=admin_headers
    )
    assert [a["id"] for a in listed.json()] == [alert["id"]]

    events = await client.get(
        "/security/events", params={"action": "alert_created"}, headers=admin_headers
    )
    (event,) = events.json()["events"]
    assert event["resource_id"] == alert["id"]


@pytest.mark.asyncio
async def test_resolve_alert(client: AsyncClient, admin_headers):
    alert = await create_alert(client, admin_headers)

    response = await client.post(
        f"/security/alerts/{alert['id']}/resolve",
        json={"resolved_by": "admin_1", "notes": "expected quarterly export"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    resolved = response.json()
    assert resolved["is_resolved"] is True
    assert resolved["resolved_by"] == "admin_1"
    assert resolved["resolved_at"] is not None

    unresolved = await client.get(
        "/security/alerts", params={"unresolved_only": True}, headers=admin_headers
    )
    assert unresolved.json() == []


@pytest.mark.asyncio
async def test_resolve_unknown_alert(client: AsyncClient, admin_headers):
    response = await client.post(
        "/security/alerts/alert_missing/resolve",
        json={"resolved_by": "admin_1"},
        headers=admin_headers,
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ALERT_NOT_FOUND"
