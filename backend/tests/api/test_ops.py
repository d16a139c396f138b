import pytest

from anonchat.main import chat_core
from anonchat.settings import settings


@pytest.mark.asyncio
async def test_liveness(api_client):
	response = await api_client.get("/health/live")
	assert response.status_code == 200
	assert response.json() == {"status": "ok"}
	assert response.headers.get("X-Request-Id")


@pytest.mark.asyncio
async def test_readiness_reports_core_stats(api_client):
	response = await api_client.get("/health/ready")
	assert response.status_code == 200
	body = response.json()
	assert body["status"] == "ok"
	assert body["persona"] is True
	assert body["redis"] is True
	assert set(body["core"]) == {"online", "waiting", "active_sessions", "rooms"}


@pytest.mark.asyncio
async def test_stats_counts_online_participants(api_client):
	participant = await chat_core.join("stats-probe")
	try:
		response = await api_client.get("/stats")
		assert response.status_code == 200
		body = response.json()
		assert body["online"] >= 1
		assert body["active_sessions"] == chat_core.sessions.active_count()
	finally:
		await chat_core.disconnect(participant.id)


@pytest.mark.asyncio
async def test_metrics_forbidden_without_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", None)
	response = await api_client.get("/metrics")
	assert response.status_code == 403
	assert response.json()["detail"] == "admin_token_not_configured"
	assert "request_id" in response.json()


@pytest.mark.asyncio
async def test_metrics_with_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", "secret")

	denied = await api_client.get("/metrics", headers={"X-Admin-Token": "wrong"})
	assert denied.status_code == 403

	allowed = await api_client.get("/metrics", headers={"Authorization": "Bearer secret"})
	assert allowed.status_code == 200
	assert "anonchat_participants_online" in allowed.text


@pytest.mark.asyncio
async def test_metrics_public(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", True)
	response = await api_client.get("/metrics")
	assert response.status_code == 200
