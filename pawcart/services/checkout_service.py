# pawcart/services/checkout_service.py
import asyncio
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.orm import Session

from pawcart.data.models.order import OrderModel
from pawcart.domain.errors import ConcurrencyConflict, FieldError, OrderNotFound, StockConflict, ValidationError
from pawcart.domain.models import (
    Address,
    OrderDraft,
    OrderLine,
    PaymentMethod,
    ReconciliationReport,
)
from pawcart.domain.validation import AddressForm, ContactForm, collect_errors
from pawcart.repos.order_repo import OrderRepo
from pawcart.services.cart_service import CartService
from pawcart.services.loyalty import (
    BalanceSource,
    LoyaltyBalanceTracker,
    LoyaltySelection,
    discount_for,
    order_total,
)
from pawcart.services.stock_reconciler import ReconciliationCoordinator
from pawcart.utils.settings import DELIVERY_FEE, POINT_VALUE
from pawcart.utils.logging import get_logger

logger = get_logger(__name__)

#a superseded pass is re-run at most this many times
_RECONCILE_ROUNDS = 3


class CheckoutOrchestrator:
    """Validates the checkout form and assembles the OrderDraft. No I/O."""

    def __init__(self, delivery_fee: Decimal = DELIVERY_FEE, point_value: Decimal = POINT_VALUE):
        self.delivery_fee = delivery_fee
        self.point_value = point_value

    def validate(
        self,
        billing: dict,
        shipping: dict | None,
        same_as_billing: bool,
        email: str,
        payment_method: str,
    ) -> list[FieldError]:
        errors = collect_errors(AddressForm, billing, "billing")
        #shipping copied from billing is not validated twice
        if not same_as_billing:
            errors += collect_errors(AddressForm, shipping or {}, "shipping")
        errors += collect_errors(ContactForm, {"email": email}, "contact")
        if payment_method not in {m.value for m in PaymentMethod}:
            errors.append(FieldError("payment", "payment_method", "unsupported payment method"))
        return errors

    def build_draft(
        self,
        report: ReconciliationReport,
        selected_points: int,
        billing: Address,
        shipping: Address,
        payment_method: PaymentMethod,
        email: str,
    ) -> OrderDraft:
        #only the adjusted subtotal is allowed in here, never the raw one
        subtotal = report.adjusted_subtotal
        points = max(selected_points, 0)
        discount = discount_for(points, subtotal, self.delivery_fee, self.point_value)

        return OrderDraft(
            line_items=tuple(
                OrderLine(
                    product_ref=v.line.product_ref,
                    name=v.line.display_name,
                    quantity=v.chargeable_qty,
                    unit_price=v.line.unit_price,
                )
                for v in report.fulfillable
            ),
            subtotal=subtotal,
            delivery_fee=self.delivery_fee,
            points_redeemed=points,
            discount=discount,
            total=order_total(subtotal, self.delivery_fee, discount),
            billing_address=billing,
            shipping_address=shipping,
            payment_method=payment_method,
            contact_email=email,
        )


class CheckoutService:
    """
    Use case: checkout submission.

    1. validates every field (nothing leaves the process on failure)
    2. reconciles the cart against live stock, right now
    3. resolves the points balance and clamps the redemption
    4. builds and persists the OrderDraft
    """

    def __init__(
        self,
        db: Session,
        coordinator: ReconciliationCoordinator | None = None,
        balance_sources=None,
        orchestrator: CheckoutOrchestrator | None = None,
    ):
        self.carts = CartService(db)
        self.orders = OrderRepo(db)
        self.coordinator = coordinator
        self.balance_sources = balance_sources
        self.orchestrator = orchestrator or CheckoutOrchestrator()

    async def _reconcile(self, cart_id: int, lines) -> ReconciliationReport:
        for _ in range(_RECONCILE_ROUNDS):
            report = await self.coordinator.run(lines)
            if report is not None:
                return report
        #newer passes kept overtaking this one: the cart is changing under us
        raise ConcurrencyConflict(cart_id)

    async def _redeemable(self, user_id: str, requested: int) -> tuple[int, bool]:
        """Points to redeem, and whether any balance could be read at all."""
        if requested <= 0:
            return 0, True
        tracker = LoyaltyBalanceTracker(self.balance_sources, user_id, LoyaltySelection())
        try:
            selection = await tracker.refresh()
        finally:
            tracker.close()
        chosen = selection.select(requested)
        logger.info(
            f"Points for {user_id}: balance {selection.balance} ({selection.source.value}), "
            f"requested {requested}, redeemed {chosen}"
        )
        return chosen, selection.source is not BalanceSource.NONE

    async def submit(
        self,
        user_id: str,
        cart_id: int,
        billing: dict,
        shipping: dict | None,
        same_as_billing: bool,
        email: str,
        payment_method: str = PaymentMethod.ONLINE.value,
        points: int = 0,
    ) -> Dict[str, Any]:
        errors = self.orchestrator.validate(billing, shipping, same_as_billing, email, payment_method)
        if errors:
            logger.info(f"Checkout for cart {cart_id} rejected: {len(errors)} field error(s)")
            raise ValidationError(errors)

        ledger = await asyncio.to_thread(self.carts.load_ledger, cart_id, user_id)
        if not len(ledger):
            raise ValidationError.single("cart", "items", "cart is empty")

        report = await self._reconcile(cart_id, ledger.lines)
        if not report.fulfillable:
            raise StockConflict(report.verdicts)

        billing_address = Address(**AddressForm.model_validate(billing).model_dump())
        shipping_address = (
            billing_address
            if same_as_billing
            else Address(**AddressForm.model_validate(shipping or {}).model_dump())
        )

        selected_points, balance_known = await self._redeemable(user_id, points)
        draft = self.orchestrator.build_draft(
            report=report,
            selected_points=selected_points,
            billing=billing_address,
            shipping=shipping_address,
            payment_method=PaymentMethod(payment_method),
            email=email.strip(),
        )
        order = await asyncio.to_thread(self.orders.create_draft, draft, cart_id, user_id)

        logger.info(
            f"Order {order.id} drafted from cart {cart_id}: subtotal {draft.subtotal}, "
            f"fee {draft.delivery_fee}, discount {draft.discount}, total {draft.total}"
        )

        message = "Order created successfully"
        unavailable = [v for v in report.verdicts if v.chargeable_qty == 0]
        if unavailable:
            message += f" {len(unavailable)} item(s) were out of stock and not included in your order."
        if not balance_known:
            message += " Loyalty points could not be applied because your balance is unavailable right now."

        return {"order": order, "report": report, "message": message, "unavailable": unavailable}

    def get_order(self, order_id: int, user_id: str) -> OrderModel:
        order = self.orders.get_order(order_id)
        if not order:
            raise OrderNotFound(order_id)
        if order.user_id != user_id:
            raise PermissionError("No access to this order")
        return order
