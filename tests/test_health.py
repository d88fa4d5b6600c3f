from leadmagnet.core.config import settings


def test_health_reports_missing_airtable_config(client, monkeypatch):
    monkeypatch.setattr(settings, "airtable_api_token", None)
    monkeypatch.setattr(settings, "airtable_base_id", None)
    monkeypatch.setattr(settings, "airtable_leads_table", "Leads")

    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "unhealthy"
    assert body["checks"]["airtable_config"]["missing"] == "AIRTABLE_API_TOKEN, AIRTABLE_BASE_ID"


def test_health_with_complete_config(client, monkeypatch):
    monkeypatch.setattr(settings, "airtable_api_token", "patABC.def")
    monkeypatch.setattr(settings, "airtable_base_id", "appABC123")
    monkeypatch.setattr(settings, "airtable_leads_table", "Leads")

    body = client.get("/api/health").json()

    assert body["status"] == "healthy"
    assert body["checks"]["airtable_config"] == {"status": "healthy", "base_id": "appABC123", "table": "Leads"}
    assert "airtable" in body["dependencies"]


def test_liveness_and_request_id(client):
    response = client.get("/api/health/live", headers={"X-Request-ID": "req-123"})
    assert response.json()["status"] == "alive"
    assert response.headers["X-Request-ID"] == "req-123"


def test_root(client):
    body = client.get("/").json()
    assert body["name"] == "Lead Magnet API"
    assert body["environment"] == "testing"
