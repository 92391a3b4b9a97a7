"""Tests for the cart ledger and its ingress adapter."""

from decimal import Decimal

import pytest

from conftest import line
from pawcart.domain.errors import LineNotFound, ValidationError
from pawcart.services.cart_ledger import CartLedger, line_from_payload


class TestLineFromPayload:
    def test_canonical_keys(self):
        result = line_from_payload(
            {"product_ref": "P1", "quantity": 2, "unit_price": "100.50", "display_name": "Dog Food"}
        )
        assert result.product_ref == "P1"
        assert result.requested_qty == 2
        assert result.unit_price == Decimal("100.50")
        assert result.display_name == "Dog Food"

    def test_catalog_shape(self):
        result = line_from_payload(
            {"productID": "P7", "pName": "Cat Litter", "pPrice": 450, "quantity": 1, "pImage": "img/7.png"}
        )
        assert result.product_ref == "P7"
        assert result.display_name == "Cat Litter"
        assert result.unit_price == Decimal("450")
        assert result.image_ref == "img/7.png"

    def test_cart_shape(self):
        result = line_from_payload({"productId": "P8", "name": "Leash", "price": 75, "quantity": 3})
        assert result.product_ref == "P8"
        assert result.display_name == "Leash"

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError) as exc:
            line_from_payload({"product_ref": "P1", "quantity": 0, "unit_price": 1})
        assert exc.value.fields() == {"quantity"}

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError) as exc:
            line_from_payload({"product_ref": "P1", "quantity": 1, "unit_price": -1})
        assert exc.value.fields() == {"unit_price"}

    def test_missing_price_rejected(self):
        with pytest.raises(ValidationError) as exc:
            line_from_payload({"product_ref": "P1", "quantity": 1})
        assert exc.value.errors[0].message == "is required"

    def test_missing_ref_rejected(self):
        with pytest.raises(ValidationError):
            line_from_payload({"quantity": 1, "unit_price": 1})


class TestCartLedger:
    def test_subtotal_of_empty_ledger(self):
        assert CartLedger().subtotal == Decimal("0.00")

    def test_subtotal_sums_lines(self):
        ledger = CartLedger([line("P1", 5, 100), line("P2", 2, "12.50")])
        assert ledger.subtotal == Decimal("525.00")

    def test_set_quantity_recomputes_subtotal(self):
        ledger = CartLedger([line("P1", 5, 100)])
        ledger.set_quantity("P1", 2)
        assert ledger.get("P1").requested_qty == 2
        assert ledger.subtotal == Decimal("200")

    @pytest.mark.parametrize("qty", [0, -3])
    def test_set_quantity_below_one_is_a_noop(self, qty):
        ledger = CartLedger([line("P1", 5, 100)])
        with pytest.raises(ValidationError) as exc:
            ledger.set_quantity("P1", qty)
        assert exc.value.errors[0].field == "quantity"
        assert ledger.get("P1").requested_qty == 5
        assert ledger.subtotal == Decimal("500")

    def test_set_quantity_requires_integer(self):
        ledger = CartLedger([line("P1", 5, 100)])
        with pytest.raises(ValidationError):
            ledger.set_quantity("P1", 2.5)

    def test_set_quantity_unknown_line(self):
        with pytest.raises(LineNotFound):
            CartLedger().set_quantity("P9", 1)

    def test_add_replaces_existing_line(self):
        ledger = CartLedger([line("P1", 5, 100)])
        ledger.add(line("P1", 1, 90))
        assert len(ledger) == 1
        assert ledger.subtotal == Decimal("90")

    def test_remove(self):
        ledger = CartLedger([line("P1", 5, 100), line("P2", 1, 10)])
        ledger.remove("P1")
        assert "P1" not in ledger
        assert ledger.subtotal == Decimal("10")

    def test_remove_unknown_line(self):
        with pytest.raises(LineNotFound):
            CartLedger().remove("P1")

    def test_clear(self):
        ledger = CartLedger([line("P1", 5, 100)])
        ledger.clear()
        assert len(ledger) == 0
        assert ledger.subtotal == Decimal("0.00")
