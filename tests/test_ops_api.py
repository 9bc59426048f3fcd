import jwt
import pytest
from fastapi.testclient import TestClient

from aa_ingestion import api


@pytest.fixture
def client(engine, fake_aa):
    api.app.dependency_overrides[api.get_engine] = lambda: engine
    api.app.dependency_overrides[api.get_transport] = lambda: fake_aa.transport
    yield TestClient(api.app)
    api.app.dependency_overrides.clear()


AUTH = {"Authorization": "Bearer testtoken"}


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


def test_sync_requires_token(client):
    assert client.post("/sync/8956545791").status_code == 401
    assert client.post("/sync/8956545791", headers={"Authorization": "Bearer nope"}).status_code == 403
    assert client.post("/sync/8956545791", headers={"Authorization": "Basic testtoken"}).status_code == 403


def test_sync_accepts_jwt(client, fake_aa):
    fake_aa.on("/nps/user-linked-accounts", (200, {"fipData": []}))
    token = jwt.encode({"sub": "ops"}, "testsecret", algorithm="HS256")
    resp = client.post(
        "/sync/8956545791", params={"plans": ["NPS"]}, headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.status_code == 200, resp.text


def test_sync_runs_batch_and_exposes_fetch_runs(client, fake_aa, deposit_linked, deposit_statement):
    fake_aa.on("/deposit/user-linked-accounts", (200, deposit_linked))
    fake_aa.on("/deposit/user-account-statement", (200, deposit_statement))
    fake_aa.on("/deposit/insights", (200, {"insights": {}}))
    fake_aa.on("/nps/user-linked-accounts", (502, "bad gateway"))

    resp = client.post("/sync/8956545791", params={"plans": ["DEPOSIT", "NPS"]}, headers=AUTH)

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["unique_identifier"] == "8956545791"
    assert body["plans"]["DEPOSIT"]["status"] == "Done"
    assert body["plans"]["NPS"]["status"] == "Failed"

    run_id = body["plans"]["DEPOSIT"]["steps"][0]["fetch_run_id"]
    run = client.get(f"/fetch-runs/{run_id}", headers=AUTH)
    assert run.status_code == 200
    assert run.json()["status"] == "Fetched"
    assert run.json()["endpoint"] == "/deposit/user-linked-accounts"
    assert run.json()["payload_roles"] == ["Request", "Response"]


def test_sync_rejects_unknown_plan(client):
    resp = client.post("/sync/8956545791", params={"plans": ["GOLD"]}, headers=AUTH)
    assert resp.status_code == 400
    assert "GOLD" in resp.json()["detail"]


def test_fetch_run_not_found(client):
    assert client.get("/fetch-runs/999999", headers=AUTH).status_code == 404
