"""
Domain types of the pricing core.

Plain frozen dataclasses; the ORM rows in pawcart.data.models and the HTTP
schemas in pawcart.domain.schemas are mapped onto these at the edges.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CartLine:
    product_ref: str
    requested_qty: int
    unit_price: Decimal
    display_name: str = ""
    image_ref: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.requested_qty


# ═══════════════════════════════════════════════════════════════════════════════
# Inventory
# ═══════════════════════════════════════════════════════════════════════════════


class ProductStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


@dataclass(frozen=True)
class InventorySnapshot:
    product_ref: str
    available_qty: int
    status: ProductStatus = ProductStatus.ACTIVE


class Availability(str, Enum):
    FULL = "Full"
    PARTIAL = "Partial"
    NONE = "None"


@dataclass(frozen=True)
class LineVerdict:
    line: CartLine
    availability: Availability
    available_qty: int
    reason: str | None = None

    @property
    def chargeable_qty(self) -> int:
        if self.availability is Availability.FULL:
            return self.line.requested_qty
        if self.availability is Availability.PARTIAL:
            return self.available_qty
        return 0

    @property
    def shortfall(self) -> int:
        return self.line.requested_qty - self.chargeable_qty

    @property
    def charged(self) -> Decimal:
        return self.line.unit_price * self.chargeable_qty


@dataclass(frozen=True)
class ReconciliationReport:
    verdicts: tuple[LineVerdict, ...]
    adjusted_subtotal: Decimal
    raw_subtotal: Decimal
    token: int = 0

    @property
    def all_full(self) -> bool:
        return all(v.availability is Availability.FULL for v in self.verdicts)

    @property
    def conflicts(self) -> tuple[LineVerdict, ...]:
        return tuple(v for v in self.verdicts if v.availability is not Availability.FULL)

    @property
    def fulfillable(self) -> tuple[LineVerdict, ...]:
        return tuple(v for v in self.verdicts if v.chargeable_qty > 0)


# ═══════════════════════════════════════════════════════════════════════════════
# Order
# ═══════════════════════════════════════════════════════════════════════════════


class PaymentMethod(str, Enum):
    ONLINE = "online"
    BANK_TRANSFER = "bank_transfer"
    COD = "cod"


@dataclass(frozen=True)
class Address:
    full_name: str
    phone: str
    street: str
    city: str
    postal_code: str
    country: str = ""

    def as_dict(self) -> dict:
        return {
            "full_name": self.full_name,
            "phone": self.phone,
            "street": self.street,
            "city": self.city,
            "postal_code": self.postal_code,
            "country": self.country,
        }


@dataclass(frozen=True)
class OrderLine:
    product_ref: str
    name: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderDraft:
    line_items: tuple[OrderLine, ...]
    subtotal: Decimal
    delivery_fee: Decimal
    points_redeemed: int
    discount: Decimal
    total: Decimal
    billing_address: Address
    shipping_address: Address
    payment_method: PaymentMethod
    contact_email: str


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class MarkPaidResult(str, Enum):
    OK = "ok"
    ALREADY_PAID = "AlreadyPaid"
    NOT_FOUND = "NotFound"


# ═══════════════════════════════════════════════════════════════════════════════
# OTP
# ═══════════════════════════════════════════════════════════════════════════════


class VerificationOutcome(str, Enum):
    MATCH = "Match"
    MISMATCH = "Mismatch"
    EXPIRED = "Expired"


@dataclass
class OTPChallenge:
    challenge_id: str
    resource_ref: str
    destination_email: str
    issued_at: datetime
    expires_at: datetime
    resource_type: str = "order"
    attempts_used: int = 0
    code_hash: str = field(default="", repr=False)
    revoked: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at
