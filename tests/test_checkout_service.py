"""Tests for checkout submission: validation, reconciliation and the order draft."""

import asyncio
from decimal import Decimal

import pytest

from conftest import VALID_ADDRESS, FakeAccounts, FakeInventory, line, stock
from pawcart.data.models.order import OrderModel
from pawcart.domain.errors import BalanceUnavailable, OrderNotFound, StockConflict, ValidationError
from pawcart.domain.models import Address, Availability, LineVerdict, PaymentMethod, ReconciliationReport
from pawcart.services.cart_service import CartService
from pawcart.services.checkout_service import CheckoutOrchestrator, CheckoutService
from pawcart.services.stock_reconciler import ReconciliationCoordinator, StockReconciler


def submit(service, cart_id, **overrides):
    kwargs = {
        "user_id": "u1",
        "cart_id": cart_id,
        "billing": VALID_ADDRESS,
        "shipping": None,
        "same_as_billing": True,
        "email": "owner@example.com",
        "payment_method": "online",
        "points": 0,
    }
    kwargs.update(overrides)
    return asyncio.run(service.submit(**kwargs))


@pytest.fixture
def cart_id(db_session):
    carts = CartService(db_session)
    cart_id = carts.create_cart("u1")["cart_id"]
    carts.set_quantity("u1", cart_id, "P1", 1, {"name": "Dog food", "price": "100"})
    carts.set_quantity("u1", cart_id, "P2", 2, {"name": "Cat toy", "price": "100"})
    return cart_id


def build_service(db_session, inventory, accounts=None):
    return CheckoutService(
        db_session,
        coordinator=ReconciliationCoordinator(StockReconciler(inventory)),
        balance_sources=accounts or FakeAccounts(authoritative=0, fallback=0),
    )


class TestValidation:
    def test_bad_phone_blocks_before_any_call(self, db_session, cart_id):
        inventory = FakeInventory({"P1": stock("P1", 5), "P2": stock("P2", 5)})
        service = build_service(db_session, inventory)

        with pytest.raises(ValidationError) as exc:
            submit(service, cart_id, billing={**VALID_ADDRESS, "phone": "12345"})

        assert [e.as_dict() for e in exc.value.errors] == [
            {"section": "billing", "field": "phone", "message": "must be 10 digits"}
        ]
        assert inventory.calls == []
        assert db_session.query(OrderModel).count() == 0

    def test_shipping_validated_when_not_same_as_billing(self):
        errors = CheckoutOrchestrator().validate(VALID_ADDRESS, {}, False, "owner@example.com", "online")
        assert {e.section for e in errors} == {"shipping"}

    def test_shipping_skipped_when_same_as_billing(self):
        assert CheckoutOrchestrator().validate(VALID_ADDRESS, {}, True, "owner@example.com", "cod") == []

    def test_unsupported_payment_method(self):
        errors = CheckoutOrchestrator().validate(VALID_ADDRESS, None, True, "owner@example.com", "crypto")
        assert [(e.section, e.field) for e in errors] == [("payment", "payment_method")]

    def test_empty_cart(self, db_session):
        carts = CartService(db_session)
        empty_id = carts.create_cart("u1")["cart_id"]
        service = build_service(db_session, FakeInventory())

        with pytest.raises(ValidationError) as exc:
            submit(service, empty_id)
        assert exc.value.fields() == {"items"}


class TestSubmit:
    def test_full_stock_with_points(self, db_session, cart_id):
        inventory = FakeInventory({"P1": stock("P1", 5), "P2": stock("P2", 5)})
        service = build_service(db_session, inventory, FakeAccounts(authoritative=42, fallback=10))

        result = submit(service, cart_id, points=37)
        order = result["order"]

        assert order.subtotal == Decimal("300")
        assert order.delivery_fee == Decimal("300")
        assert order.points_redeemed == 35
        assert order.discount == Decimal("350")
        assert order.total == Decimal("250")
        assert order.status == "PENDING"
        assert result["unavailable"] == []
        assert result["message"] == "Order created successfully"

    def test_partial_and_missing_lines(self, db_session, cart_id):
        inventory = FakeInventory({"P1": stock("P1", 0), "P2": stock("P2", 1)})
        service = build_service(db_session, inventory)

        result = submit(service, cart_id)
        order = result["order"]
        report = result["report"]

        assert [v.availability for v in report.verdicts] == [Availability.NONE, Availability.PARTIAL]
        assert report.raw_subtotal == Decimal("300")
        assert order.subtotal == Decimal("100")
        assert order.total == Decimal("400")
        assert [(i.product_ref, i.quantity) for i in order.items] == [("P2", 1)]
        assert "1 item(s) were out of stock" in result["message"]

    def test_nothing_fulfillable_blocks(self, db_session, cart_id):
        inventory = FakeInventory({"P1": stock("P1", 0), "P2": None})
        service = build_service(db_session, inventory)

        with pytest.raises(StockConflict) as exc:
            submit(service, cart_id)

        assert [v.reason for v in exc.value.verdicts] == ["Out of stock", "Product not found"]
        assert db_session.query(OrderModel).count() == 0

    def test_points_fall_back_to_history(self, db_session, cart_id):
        inventory = FakeInventory({"P1": stock("P1", 5), "P2": stock("P2", 5)})
        accounts = FakeAccounts(authoritative=BalanceUnavailable("u1", "down"), fallback=12)
        service = build_service(db_session, inventory, accounts)

        order = submit(service, cart_id, points=40)["order"]
        assert order.points_redeemed == 10

    def test_no_balance_means_no_redemption(self, db_session, cart_id):
        inventory = FakeInventory({"P1": stock("P1", 5), "P2": stock("P2", 5)})
        accounts = FakeAccounts(
            authoritative=BalanceUnavailable("u1", "down"),
            fallback=BalanceUnavailable("u1", "down"),
        )
        service = build_service(db_session, inventory, accounts)

        result = submit(service, cart_id, points=40)
        order = result["order"]
        assert order.points_redeemed == 0
        assert order.total == Decimal("600")
        assert "Loyalty points could not be applied" in result["message"]

    def test_separate_shipping_address(self, db_session, cart_id):
        inventory = FakeInventory({"P1": stock("P1", 5), "P2": stock("P2", 5)})
        service = build_service(db_session, inventory)
        shipping = {**VALID_ADDRESS, "city": "Kandy", "postal_code": "20000"}

        order = submit(service, cart_id, shipping=shipping, same_as_billing=False, payment_method="cod")["order"]

        assert order.billing_address["city"] == "Colombo"
        assert order.shipping_address["city"] == "Kandy"
        assert order.payment_method == PaymentMethod.COD.value

    def test_get_order_ownership(self, db_session, cart_id):
        inventory = FakeInventory({"P1": stock("P1", 5), "P2": stock("P2", 5)})
        service = build_service(db_session, inventory)
        order = submit(service, cart_id)["order"]

        assert service.get_order(order.id, "u1").id == order.id
        with pytest.raises(PermissionError):
            service.get_order(order.id, "u2")
        with pytest.raises(OrderNotFound):
            service.get_order(999, "u1")


class TestBuildDraft:
    def test_draft_uses_adjusted_subtotal(self):
        verdicts = (
            LineVerdict(line("P1", 3, 100), Availability.PARTIAL, 1),
            LineVerdict(line("P2", 1, 50), Availability.FULL, 4),
        )
        report = ReconciliationReport(verdicts, Decimal("150"), Decimal("350"))
        address = Address(**VALID_ADDRESS)

        draft = CheckoutOrchestrator(Decimal("300"), Decimal("10")).build_draft(
            report, 5, address, address, PaymentMethod.ONLINE, "owner@example.com"
        )

        assert draft.subtotal == Decimal("150")
        assert draft.discount == Decimal("50")
        assert draft.total == Decimal("400")
        assert [(l.product_ref, l.quantity) for l in draft.line_items] == [("P1", 1), ("P2", 1)]
