from fastapi.testclient import TestClient

from services.onelink.config import OneLinkSettings
from services.onelink.health import check_redis


def test_healthz_reports_database_and_skipped_redis(monkeypatch):
    monkeypatch.delenv("ONELINK_REDIS_URL", raising=False)
    from web.main import app

    with TestClient(app) as client:
        response = client.get("/healthz")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] == {"ok": True}
    assert body["redis"]["status"] == "skipped"


def test_metrics_endpoint_exposes_link_counters():
    from web.main import app

    with TestClient(app) as client:
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "onelink_validations" in response.text


def test_check_redis_reports_unreachable_server():
    settings = OneLinkSettings(redis_url="redis://127.0.0.1:1/0")
    status = check_redis(settings)
    assert status["status"] == "error"
