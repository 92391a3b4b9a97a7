"""Tests for the development catalog/account mock."""

import pytest
from fastapi.testclient import TestClient

from pawcart.catalog_service import main as catalog


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(catalog, "ACCOUNTS", {"u1": {"loyalty_points": 42}})
    return TestClient(catalog.app)


def test_product_lookup(client):
    assert client.get("/products/P1").json()["pQuantity"] == 3
    assert client.get("/products/P404").status_code == 404


def test_account_balance(client):
    assert client.get("/accounts/u1").json()["user"]["loyalty_points"] == 42
    assert client.get("/accounts/nobody").status_code == 404


def test_deduct_never_below_zero(client):
    assert client.post("/accounts/u1/points/deduct", json={"points": 35}).json()["loyalty_points"] == 7
    assert client.post("/accounts/u1/points/deduct", json={"points": 35}).json()["loyalty_points"] == 0


def test_owner_appointments(client):
    owned = client.get("/appointments/owner/u1").json()
    assert sum(a["points_awarded"] for a in owned) == 25
    assert len(client.get("/appointments").json()) == 3
