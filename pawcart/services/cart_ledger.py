# pawcart/services/cart_ledger.py
from decimal import Decimal, InvalidOperation
from typing import Iterable

from pawcart.domain.errors import LineNotFound, ValidationError
from pawcart.domain.models import CartLine

#catalog and cart payloads drifted apart over time; the first key present wins
_REF_KEYS = ("product_ref", "productId", "productID")
_NAME_KEYS = ("display_name", "name", "pName")
_PRICE_KEYS = ("unit_price", "price", "pPrice")
_IMAGE_KEYS = ("image_ref", "image", "pImage")
_QTY_KEYS = ("requested_qty", "quantity")


def _first(data: dict, keys: tuple[str, ...], default=None):
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def line_from_payload(data: dict) -> CartLine:
    """Map any known cart/catalog item shape onto the canonical CartLine."""
    product_ref = _first(data, _REF_KEYS)
    if product_ref is None or str(product_ref) == "":
        raise ValidationError.single("cart", "product_ref", "is required")

    try:
        qty = int(_first(data, _QTY_KEYS, 0))
    except (TypeError, ValueError):
        raise ValidationError.single("cart", "quantity", "must be a whole number")
    if qty < 1:
        raise ValidationError.single("cart", "quantity", "must be at least 1")

    raw_price = _first(data, _PRICE_KEYS)
    if raw_price is None:
        raise ValidationError.single("cart", "unit_price", "is required")
    try:
        price = Decimal(str(raw_price))
    except (InvalidOperation, ValueError):
        raise ValidationError.single("cart", "unit_price", "must be a number")
    if not price.is_finite() or price < 0:
        raise ValidationError.single("cart", "unit_price", "must be 0 or more")

    return CartLine(
        product_ref=str(product_ref),
        requested_qty=qty,
        unit_price=price,
        display_name=str(_first(data, _NAME_KEYS, "")),
        image_ref=_first(data, _IMAGE_KEYS),
    )


class CartLedger:
    """
    Client-side ledger of intent: what the user wants, at the price seen.
    Knows nothing about live stock; see StockReconciler for that.
    """

    def __init__(self, lines: Iterable[CartLine] = ()):
        self._lines: dict[str, CartLine] = {}
        for line in lines:
            self._lines[line.product_ref] = line
        self._subtotal = self._compute_subtotal()

    def _compute_subtotal(self) -> Decimal:
        return sum((line.line_total for line in self._lines.values()), Decimal("0.00"))

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines.values())

    @property
    def subtotal(self) -> Decimal:
        return self._subtotal

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, product_ref: str) -> bool:
        return product_ref in self._lines

    def get(self, product_ref: str) -> CartLine:
        try:
            return self._lines[product_ref]
        except KeyError:
            raise LineNotFound(product_ref)

    def add(self, line: CartLine) -> CartLine:
        #adding an existing product replaces its quantity and price snapshot
        if line.requested_qty < 1:
            raise ValidationError.single("cart", "quantity", "must be at least 1")
        self._lines[line.product_ref] = line
        self._subtotal = self._compute_subtotal()
        return line

    def set_quantity(self, product_ref: str, qty) -> CartLine:
        if isinstance(qty, bool) or not isinstance(qty, int):
            raise ValidationError.single("cart", "quantity", "must be a whole number")
        if qty < 1:
            raise ValidationError.single("cart", "quantity", "must be at least 1")

        current = self.get(product_ref)
        updated = CartLine(
            product_ref=current.product_ref,
            requested_qty=qty,
            unit_price=current.unit_price,
            display_name=current.display_name,
            image_ref=current.image_ref,
        )
        self._lines[product_ref] = updated
        self._subtotal = self._compute_subtotal()
        return updated

    def remove(self, product_ref: str) -> None:
        if self._lines.pop(product_ref, None) is None:
            raise LineNotFound(product_ref)
        self._subtotal = self._compute_subtotal()

    def clear(self) -> None:
        self._lines.clear()
        self._subtotal = Decimal("0.00")
