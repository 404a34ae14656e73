import pytest
from httpx import AsyncClient


async def log_failed_login(client: AsyncClient, headers, user_id="user_1", organization_id="org_1"):
    response = await client.post(
        "/security/audit-events",
        json={
            "event_type": "authentication_failure",
            "action": "password_login",
            "outcome": "failure",
            "user_id": user_id,
            "organization_id": organization_id,
        },
        headers=headers,
    )
    assert response.status_code == 202


@pytest.mark.asyncio
async def test_summary_requires_organization(client: AsyncClient, admin_headers):
    response = await client.get("/security/summary", headers=admin_headers)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_summary_groups_organization_events(client: AsyncClient, admin_headers):
    for _ in range(2):
        await log_failed_login(client, admin_headers)
    await log_failed_login(client, admin_headers, organization_id="org_other")

    response = await client.get(
        "/security/summary", params={"organization_id": "org_1", "days": 7}, headers=admin_headers
    )

    assert response.status_code == 200
    summary = response.json()
    assert summary["total_events"] == 2
    assert summary["events_by_type"] == {"authentication": 2}
    assert summary["events_by_severity"] == {"medium": 2}
    assert summary["recent_high_severity_events"] == []


@pytest.mark.asyncio
async def test_events_can_be_filtered_by_severity(client: AsyncClient, admin_headers):
    await log_failed_login(client, admin_headers)

    medium = await client.get(
        "/security/events", params={"severity": ["medium", "high"]}, headers=admin_headers
    )
    low = await client.get("/security/events", params={"severity": "low"}, headers=admin_headers)

    assert len(medium.json()["events"]) == 1
    assert low.json()["events"] == []


@pytest.mark.asyncio
async def test_suspicious_activity_for_clean_user(client: AsyncClient, admin_headers):
    response = await client.get("/security/suspicious-activity/user_quiet", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["patterns"]["detected"] is False
    assert body["patterns"]["risk_score"] == 0
    assert body["heuristic"]["risk_score"] == 0
    assert body["heuristic"]["suspicious_patterns"] == []


@pytest.mark.asyncio
async def test_suspicious_activity_after_failed_logins(client: AsyncClient, admin_headers):
    for _ in range(5):
        await log_failed_login(client, admin_headers, user_id="user_target")

    response = await client.get(
        "/security/suspicious-activity/user_target", headers=admin_headers
    )

    body = response.json()
    assert body["patterns"]["detected"] is True
    assert "multiple_failed_logins" in [p["type"] for p in body["patterns"]["patterns"]]
    assert "Multiple failed login attempts" in body["heuristic"]["suspicious_patterns"]


@pytest.mark.asyncio
async def test_metrics_rank_threats(client: AsyncClient, admin_headers):
    for _ in range(3):
        await log_failed_login(client, admin_headers)

    response = await client.get(
        "/security/metrics", params={"organization_id": "org_1"}, headers=admin_headers
    )

    assert response.status_code == 200
    metrics = response.json()
    assert metrics["total_events"] == 3
    assert metrics["blocked_attempts"] == 0
    assert metrics["alerts_generated"] == 0
    assert metrics["top_threats"][0]["type"] == "auth.login_failed"
    assert metrics["top_threats"][0]["count"] == 3
    assert metrics["top_threats"][0]["severity"] == "medium"


@pytest.mark.asyncio
async def test_events_filter_accepts_utc_suffixed_dates(client: AsyncClient, admin_headers):
    await log_failed_login(client, admin_headers)

    recent = await client.get(
        "/security/events",
        params={"start_date": "2000-01-01T00:00:00Z", "end_date": "2999-01-01T00:00:00Z"},
        headers=admin_headers,
    )
    future = await client.get(
        "/security/events", params={"start_date": "2999-01-01T00:00:00Z"}, headers=admin_headers
    )

    assert recent.status_code == 200
    assert len(recent.json()["events"]) == 1
    assert future.status_code == 200
    assert future.json()["events"] == []
