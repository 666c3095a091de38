"""
Tests for open_funding/api/endpoints.py

Drives the FastAPI app through fastapi.testclient.TestClient with injected,
in-memory store objects. No network access.
"""

import pytest
from fastapi.testclient import TestClient

from open_funding.api.endpoints import create_app
from open_funding.models import Payout, PayoutPlan
from open_funding.storage.repository import TransactionLedger

OWNER = "addr1qowner"


@pytest.fixture
def ledger():
    return TransactionLedger()


@pytest.fixture
def client(repository, catalog, ledger):
    return TestClient(create_app(repository=repository, catalog=catalog, ledger=ledger))


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------

def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_stats_and_recent_transactions(client, ledger):
    tx = ledger.record("l1", PayoutPlan(payouts=[Payout("addr1qa", 2_500_000)]))
    ledger.mark_completed(tx.id, "hash1")

    stats = client.get("/api/v1/stats").json()
    assert stats == {"total_funded": "2.50", "projects_supported": 2, "active_donors": 1}

    recent = client.get("/api/v1/transactions/recent", params={"limit": 5}).json()
    assert recent[0]["tx_hash"] == "hash1"
    assert recent[0]["recipients"] == [{"address": "addr1qa", "lovelace": 2_500_000}]


# ---------------------------------------------------------------------------
# Funding lists
# ---------------------------------------------------------------------------

def test_list_requires_owner(client):
    assert client.get("/api/v1/funding-lists").status_code == 400


def test_list_owner_lists(client):
    resp = client.get("/api/v1/funding-lists", params={"owner_id": OWNER})
    assert resp.status_code == 200
    assert {fl["id"] for fl in resp.json()} == {"l1", "l2"}


def test_create_with_catalog_project(client):
    body = {
        "name": "Tooling",
        "monthly_budget": "250",
        "owner_id": OWNER,
        "projects": [{"project_id": "mesh", "distribution_percentage": 60}],
    }
    resp = client.post("/api/v1/funding-lists", json=body)
    assert resp.status_code == 201
    data = resp.json()
    assert data["monthly_budget"] == "250"
    assert data["projects"][0]["project"]["id"] == "mesh"
    assert data["projects"][0]["distribution_percentage"] == "60"


def test_create_rejects_bad_budget(client):
    body = {"name": "Bad", "monthly_budget": "lots", "owner_id": OWNER}
    resp = client.post("/api/v1/funding-lists", json=body)
    assert resp.status_code == 422
    assert "monthly_budget" in resp.json()["detail"]


def test_create_unknown_catalog_project(client):
    body = {
        "name": "X",
        "monthly_budget": "1",
        "owner_id": OWNER,
        "projects": [{"project_id": "missing", "distribution_percentage": 10}],
    }
    assert client.post("/api/v1/funding-lists", json=body).status_code == 404
    assert len(client.get("/api/v1/funding-lists", params={"owner_id": OWNER}).json()) == 2


def test_create_rejects_over_allocation(client):
    body = {
        "name": "Greedy",
        "monthly_budget": "100",
        "owner_id": OWNER,
        "projects": [
            {"project_id": "mesh", "distribution_percentage": 70},
            {"project_id": "plutus", "distribution_percentage": 40},
        ],
    }
    assert client.post("/api/v1/funding-lists", json=body).status_code == 422


def test_create_rejects_project_listed_twice(client):
    body = {
        "name": "Twice",
        "monthly_budget": "100",
        "owner_id": OWNER,
        "projects": [
            {"project_id": "plutus", "distribution_percentage": 20},
            {"project_id": "plutus", "distribution_percentage": 30},
        ],
    }
    resp = client.post("/api/v1/funding-lists", json=body)
    assert resp.status_code == 422
    assert "more than once" in resp.json()["detail"]


@pytest.mark.parametrize("budget", ["1e999999", "1,5"])
def test_create_rejects_unusable_budget_text(client, budget):
    body = {"name": "Odd", "monthly_budget": budget, "owner_id": "addr1qfresh"}
    assert client.post("/api/v1/funding-lists", json=body).status_code == 422
    resp = client.get("/api/v1/portfolio/addr1qfresh")
    assert resp.status_code == 200
    assert resp.json()["projects"] == []


def test_get_update_delete(client):
    assert client.get("/api/v1/funding-lists/l2").json()["monthly_budget"] == "500"

    resp = client.put("/api/v1/funding-lists/l2", json={"monthly_budget": "800", "name": "More"})
    assert resp.status_code == 200
    assert resp.json()["name"] == "More"

    assert client.delete("/api/v1/funding-lists/l2").json() == {"success": True}
    assert client.get("/api/v1/funding-lists/l2").status_code == 404
    assert client.delete("/api/v1/funding-lists/l2").status_code == 404


def test_project_membership_routes(client):
    resp = client.post(
        "/api/v1/funding-lists/l2/projects",
        json={"project_id": "blockfrost", "distribution_percentage": "30"},
    )
    assert resp.status_code == 200
    assert [p["project"]["id"] for p in resp.json()["projects"]] == ["plutus", "blockfrost"]

    resp = client.patch(
        "/api/v1/funding-lists/l2/projects/blockfrost", json={"distribution_percentage": 50}
    )
    assert resp.json()["projects"][1]["distribution_percentage"] == "50"

    resp = client.patch(
        "/api/v1/funding-lists/l2/projects/blockfrost", json={"distribution_percentage": 90}
    )
    assert resp.status_code == 422

    resp = client.delete("/api/v1/funding-lists/l2/projects/blockfrost")
    assert len(resp.json()["projects"]) == 1
    assert client.delete("/api/v1/funding-lists/l2/projects/blockfrost").status_code == 404


def test_inline_project_payload(client):
    resp = client.post(
        "/api/v1/funding-lists/l2/projects",
        json={
            "project": {"id": "new", "name": "New", "dependencies": [{"name": "d", "weight": -1}]},
            "distribution_percentage": 5,
        },
    )
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Projects, portfolio, payouts
# ---------------------------------------------------------------------------

def test_search_projects(client):
    resp = client.get("/api/v1/projects", params={"query": "sdk"})
    assert [p["id"] for p in resp.json()] == ["mesh"]


def test_portfolio(client):
    data = client.get(f"/api/v1/portfolio/{OWNER}").json()
    plutus = data["projects"][0]
    assert plutus["total_allocation"] == "600.00"
    assert plutus["usage_count"] == 2
    assert plutus["average_allocation"] == "300.00"
    assert data["summary"]["total_monthly_budget"] == "900.00"
    assert data["summary"]["average_lists_per_project"] == "1.5"
    deps = {d["name"]: d["amount"] for d in data["summary"]["dependencies"]}
    assert deps == {"cardano-serialization-lib": "180.00", "aiken": "90.00"}


def test_portfolio_unknown_owner_is_empty(client):
    data = client.get("/api/v1/portfolio/addr1qnobody").json()
    assert data["projects"] == []
    assert data["summary"]["project_count"] == 0


def test_payouts(client):
    data = client.get(f"/api/v1/payouts/{OWNER}").json()
    assert data["outputs"]["addr1qplutus"] == [{"unit": "lovelace", "quantity": "420000000"}]
    assert data["outputs"]["addr1qmesh"] == [{"unit": "lovelace", "quantity": "210000000"}]
    assert set(data["unassigned"]) == {"cardano-serialization-lib", "aiken"}
    assert data["total_lovelace"] == 630_000_000
