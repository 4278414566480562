import pytest
from fastapi import status
from fastapi.testclient import TestClient

from app.main import app


def test_metrics_fail_closed_without_token(monkeypatch):
    from app import settings

    monkeypatch.setattr(settings.settings, "obs_admin_token", None)
    monkeypatch.setattr(settings.settings, "obs_metrics_public", False)

    client = TestClient(app)
    response = client.get("/metrics", headers={"X-Admin-Token": "whatever"})

    # Should be 403 Forbidden because no token is configured on server side
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"] == "admin_token_not_configured"


def test_metrics_work_with_correct_token(monkeypatch):
    from app import settings

    monkeypatch.setattr(settings.settings, "obs_admin_token", "secret-token")
    monkeypatch.setattr(settings.settings, "obs_metrics_public", False)

    client = TestClient(app)
    response = client.get("/metrics", headers={"Authorization": "Bearer secret-token"})

    assert response.status_code == status.HTTP_200_OK
    assert "connect_policy_decisions_total" in response.text


def test_metrics_reject_wrong_token(monkeypatch):
    from app import settings

    monkeypatch.setattr(settings.settings, "obs_admin_token", "secret-token")
    monkeypatch.setattr(settings.settings, "obs_metrics_public", False)

    client = TestClient(app)
    response = client.get("/metrics", headers={"X-Admin-Token": "wrong-token"})
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"] == "forbidden"


def test_public_metrics_need_no_token(monkeypatch):
    from app import settings

    monkeypatch.setattr(settings.settings, "obs_metrics_public", True)

    client = TestClient(app)
    assert client.get("/metrics").status_code == status.HTTP_200_OK


@pytest.mark.asyncio
async def test_liveness_and_degraded_readiness(api_client):
    live = await api_client.get("/health/live")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"

    # postgres.init_pool is patched to a no-op, so readiness reports degraded
    ready = await api_client.get("/health/ready")
    assert ready.status_code == 503
    assert ready.json()["checks"]["postgres"]["ok"] is False


def test_policy_table_requires_the_admin_token(monkeypatch):
    from app import settings

    monkeypatch.setattr(settings.settings, "obs_admin_token", "secret-token")

    client = TestClient(app)
    assert client.get("/ops/policies").status_code == status.HTTP_403_FORBIDDEN

    response = client.get("/ops/policies", headers={"X-Admin-Token": "secret-token"})
    assert response.status_code == status.HTTP_200_OK
    rules = response.json()["rules"]
    tiers = [rule["tier"] for rule in rules]
    assert tiers == sorted(tiers)
    assert not any(rule["table"] == "moderation_logs" and rule["operation"] in ("update", "delete") for rule in rules)
    members_insert = next(r for r in rules if (r["table"], r["operation"]) == ("club_members", "insert"))
    assert members_insert["reads"] == ["clubs"]
