import pytest
from fastapi.testclient import TestClient

from ticketops.app import create_app
from ticketops.core.config import settings
from ticketops.core.database import get_engine


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_TOKENS", "adm-1, adm-2")
    app = create_app()
    app.dependency_overrides[get_engine] = lambda: engine
    return TestClient(app)


def test_reclassify_requires_bearer(client):
    resp = client.post("/api/ops/imports/reclassify-delivery")
    assert resp.status_code == 401
    assert resp.json()["detail"]["error"] == "unauthorized"


def test_reclassify_rejects_unknown_token(client):
    resp = client.post(
        "/api/ops/imports/reclassify-delivery", headers={"Authorization": "Bearer nope"}
    )
    assert resp.status_code == 403


def test_reclassify_runs_and_logs_hashed_actor(client, seed_import, load_import, caplog):
    caplog.set_level("INFO")
    column_map = {"0": "record", "1": "customer", "2": "truck", "3": "gallons", "4": "amount", "5": "driver"}
    import_id = seed_import([{"gallons": 1}], column_map=column_map)

    resp = client.post(
        "/api/ops/imports/reclassify-delivery", headers={"Authorization": "Bearer adm-2"}
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["summary"]["reclassified"] == 1
    assert load_import(import_id).meta["importType"] == "delivery"
    records = [r for r in caplog.records if r.getMessage() == "ops_reclassify_delivery"]
    assert records and records[0].actor_token_hash != "adm-2"
    assert all("adm-2" not in str(r.__dict__) for r in caplog.records)


def test_metrics_endpoint(client, tables, seed_import):
    import_id = seed_import([{"date": "2025-01-15", "truck": "T-1", "qty": 4}])
    client.post("/api/imports/accept", json={"importId": import_id})
    resp = client.get("/api/ops/metrics", headers={"Authorization": "Bearer adm-1"})
    assert resp.status_code == 200
    assert resp.json()["metrics"]["imports_accepted_total{type=delivery}"]["count"] == 1
