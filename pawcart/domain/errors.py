"""Exception taxonomy for the pricing / checkout core."""

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    section: str
    field: str
    message: str

    def as_dict(self) -> dict:
        return {"section": self.section, "field": self.field, "message": self.message}


class PawcartError(Exception):
    """Base exception for all pawcart errors."""

    pass


class ValidationError(PawcartError):
    """One or more field-scoped validation failures. Never reaches the network."""

    def __init__(self, errors: list[FieldError]):
        self.errors = list(errors)
        joined = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(f"Validation failed ({joined})")

    @classmethod
    def single(cls, section: str, field: str, message: str) -> "ValidationError":
        return cls([FieldError(section, field, message)])

    def fields(self) -> set[str]:
        return {e.field for e in self.errors}


class StockConflict(PawcartError):
    """Nothing in the cart can be fulfilled; submission is blocked."""

    def __init__(self, verdicts):
        self.verdicts = tuple(verdicts)
        super().__init__(
            "No items available for purchase. All items in your cart are out of stock."
        )


class InventoryError(PawcartError):
    def __init__(self, product_ref: str, reason: str):
        self.product_ref = product_ref
        self.reason = reason
        super().__init__(f"{product_ref}: {reason}")


class ProductNotFound(InventoryError):
    def __init__(self, product_ref: str):
        super().__init__(product_ref, "Product not found")


class TransientFetchError(InventoryError):
    pass


class BalanceUnavailable(PawcartError):
    def __init__(self, account_ref: str, reason: str):
        self.account_ref = account_ref
        self.reason = reason
        super().__init__(f"Points balance for {account_ref} unavailable: {reason}")


class FinalizationConflict(PawcartError):
    """markPaid answered AlreadyPaid or NotFound. Terminal, must not be retried."""

    def __init__(self, order_ref: int, reason: str):
        self.order_ref = order_ref
        self.reason = reason
        super().__init__(f"Order {order_ref} cannot be finalized: {reason}")


class CartNotFound(PawcartError):
    def __init__(self, cart_id: int):
        self.cart_id = cart_id
        super().__init__(f"Cart not found: {cart_id}")


class LineNotFound(PawcartError):
    def __init__(self, product_ref: str):
        self.product_ref = product_ref
        super().__init__(f"Product {product_ref} is not in the cart")


class OrderNotFound(PawcartError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ConcurrencyConflict(PawcartError):
    """Optimistic lock lost: the cart changed under us."""

    def __init__(self, cart_id: int):
        self.cart_id = cart_id
        super().__init__(f"Cart {cart_id} was modified by another operation")
