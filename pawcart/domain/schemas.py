# pawcart/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List
from decimal import Decimal
from datetime import datetime


class CreateCartIn(BaseModel):
    """Schema for creating a cart."""

    user_id: str = Field(..., min_length=1, description="Account reference of the cart owner")


class CartLineIn(BaseModel):
    """Schema for adding a line / setting its quantity.

    Quantity is deliberately unconstrained here: the ledger itself rejects
    values below 1 with a field-scoped error.
    """

    quantity: int
    unit_price: Decimal | None = Field(None, ge=0, description="Price snapshot, required for new lines")
    display_name: str = ""
    image_ref: str | None = None


class CartLineOut(BaseModel):
    product_ref: str
    quantity: int
    unit_price: Decimal
    display_name: str
    image_ref: str | None = None


class CartOut(BaseModel):
    """Schema for a cart (response)."""

    cart_id: int
    user_id: str
    status: str
    items: List[CartLineOut]
    subtotal: Decimal


class VerdictOut(BaseModel):
    product_ref: str
    display_name: str
    availability: str
    requested_qty: int
    available_qty: int
    chargeable_qty: int
    shortfall: int
    charged: Decimal
    reason: str | None = None


class AvailabilityOut(BaseModel):
    """Reconciliation report for a cart (response)."""

    cart_id: int
    verdicts: List[VerdictOut]
    raw_subtotal: Decimal
    adjusted_subtotal: Decimal
    all_available: bool


class LoyaltyOut(BaseModel):
    account_ref: str
    balance: int
    source: str
    available_points: int
    selected_points: int
    discount: Decimal


class AddressIn(BaseModel):
    """Loose address payload; strict rules live in pawcart.domain.validation."""

    full_name: str = ""
    phone: str = ""
    street: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""


class CheckoutIn(BaseModel):
    """Schema for checkout submission."""

    cart_id: int = Field(..., gt=0)
    email: str = ""
    billing: AddressIn
    shipping: AddressIn | None = None
    same_as_billing: bool = False
    payment_method: str = "online"
    points: int = Field(0, description="Requested redemption, clamped server-side")


class OrderLineOut(BaseModel):
    product_ref: str
    name: str
    quantity: int
    unit_price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Schema for an order (response)."""

    id: int
    cart_id: int
    user_id: str
    status: str
    items: List[OrderLineOut]
    subtotal: Decimal
    delivery_fee: Decimal
    points_redeemed: int
    discount: Decimal
    total: Decimal
    payment_method: str
    contact_email: str
    billing_address: dict
    shipping_address: dict
    created_at: datetime
    paid_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class CheckoutOut(BaseModel):
    order: OrderOut
    message: str
    unavailable: List[VerdictOut] = []


class CardIn(BaseModel):
    name: str = ""
    number: str = ""
    expiry: str = ""
    cvv: str = ""


class OtpRequestIn(BaseModel):
    email: str = ""
    card: CardIn


class OtpVerifyIn(BaseModel):
    code: str = ""


class ConfirmationOut(BaseModel):
    order_id: int
    state: str
    outcome: str | None = None
    attempts_used: int = 0
    expires_at: datetime | None = None
    message: str
