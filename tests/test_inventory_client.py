"""Tests for the HTTP inventory client."""

import asyncio

import httpx
import pytest

from pawcart.domain.errors import ProductNotFound, TransientFetchError
from pawcart.domain.models import ProductStatus
from pawcart.services.inventory_client import InventoryClient, snapshot_from_payload


def make_client(handler, attempts=3):
    transport = httpx.MockTransport(handler)
    return InventoryClient(
        base_url="http://inventory.test",
        client=httpx.AsyncClient(transport=transport),
        attempts=attempts,
        backoff=0.001,
    )


class TestSnapshotFromPayload:
    def test_catalog_fields(self):
        snap = snapshot_from_payload("P1", {"pQuantity": 3, "status": "Active"})
        assert snap.available_qty == 3
        assert snap.status is ProductStatus.ACTIVE

    def test_inactive_status_case_insensitive(self):
        snap = snapshot_from_payload("P1", {"available_qty": 3, "status": "INACTIVE"})
        assert snap.status is ProductStatus.INACTIVE

    def test_missing_status_means_active(self):
        assert snapshot_from_payload("P1", {"quantity": 1}).status is ProductStatus.ACTIVE

    def test_negative_stock_floors_at_zero(self):
        assert snapshot_from_payload("P1", {"quantity": -4}).available_qty == 0

    def test_missing_stock_is_transient_error(self):
        with pytest.raises(TransientFetchError):
            snapshot_from_payload("P1", {"status": "Active"})


class TestInventoryClient:
    def test_get_product(self):
        def handler(request):
            assert request.url.path == "/products/P1"
            return httpx.Response(200, json={"productID": "P1", "pQuantity": 7, "status": "Active"})

        snap = asyncio.run(make_client(handler).get_product("P1"))
        assert snap.product_ref == "P1"
        assert snap.available_qty == 7

    def test_not_found(self):
        client = make_client(lambda request: httpx.Response(404, json={"detail": "Product not found"}))
        with pytest.raises(ProductNotFound):
            asyncio.run(client.get_product("P404"))

    def test_server_error_retried_then_succeeds(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"pQuantity": 2})

        snap = asyncio.run(make_client(handler).get_product("P1"))
        assert snap.available_qty == 2
        assert len(calls) == 2

    def test_server_error_exhausts_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        with pytest.raises(TransientFetchError):
            asyncio.run(make_client(handler, attempts=3).get_product("P1"))
        assert len(calls) == 3

    def test_transport_error_becomes_transient(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientFetchError):
            asyncio.run(make_client(handler, attempts=2).get_product("P1"))

    def test_malformed_body_becomes_transient(self):
        client = make_client(lambda request: httpx.Response(200, content=b"not json"))
        with pytest.raises(TransientFetchError):
            asyncio.run(client.get_product("P1"))
