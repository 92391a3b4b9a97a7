# pawcart/services/payment_service.py
import asyncio

from kombu.exceptions import OperationalError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pawcart.data.models.order import OrderModel
from pawcart.domain.errors import OrderNotFound, PawcartError
from pawcart.domain.models import MarkPaidResult
from pawcart.repos.order_repo import OrderRepo
from pawcart.services.cart_service import CartService
from pawcart.services.notification_service import NotificationService
from pawcart.services.payment_confirmation import (
    OtpChannel,
    PaymentConfirmation,
    VerificationResult,
)
from pawcart.services.stock_reconciler import ReconcilerRegistry
from pawcart.tasks.loyalty import deduct_loyalty_points_task
from pawcart.utils.logging import get_logger

logger = get_logger(__name__)


class OrderGate:
    """OrderRepo seen from the event loop: every query runs in a worker thread."""

    def __init__(self, repo: OrderRepo):
        self.repo = repo

    async def mark_paid(self, order_id: int) -> MarkPaidResult:
        return await asyncio.to_thread(self.repo.mark_paid, order_id)

    async def is_paid(self, order_id: int) -> bool:
        return await asyncio.to_thread(self.repo.is_paid, order_id)


class PaymentService:
    """
    Use cases around PaymentConfirmation for one request:
    request OTP, verify OTP, cancel. After a verified payment the redeemed
    points are deducted (async), the owner notified and the cart closed.
    """

    def __init__(self, db: Session, channel: OtpChannel, reconcilers: ReconcilerRegistry | None = None):
        self.orders = OrderRepo(db)
        self.carts = CartService(db)
        self.channel = channel
        self.reconcilers = reconcilers
        self.notification_service = NotificationService()

    def _owned_order(self, order_id: int, user_id: str) -> OrderModel:
        order = self.orders.get_order(order_id)
        if not order:
            raise OrderNotFound(order_id)
        if order.user_id != user_id:
            raise PermissionError("No access to this order")
        return order

    def _paid_order(self, order_id: int) -> tuple[str, int, int] | None:
        order = self.orders.get_order(order_id)
        if order is None:
            return None
        return order.user_id, order.points_redeemed, order.cart_id

    async def _after_payment(self, order_id: int) -> None:
        """
        Follow-up of a paid order. The payment already stands, so each step
        fails on its own and is only logged; the money-relevant steps go first.
        """
        facts = await asyncio.to_thread(self._paid_order, order_id)
        if facts is None:
            return
        user_id, points, cart_id = facts

        #points only leave the account once the order is really paid
        if points > 0:
            try:
                await asyncio.to_thread(deduct_loyalty_points_task.delay, user_id, points, order_id)
            except OperationalError as e:
                logger.error(f"Order {order_id}: could not queue deduction of {points} points for {user_id}: {e}")

        try:
            await asyncio.to_thread(self.notification_service.send_order_paid_notification, user_id, order_id)
        except OperationalError as e:
            logger.error(f"Order {order_id}: could not queue paid notification: {e}")

        try:
            await asyncio.to_thread(self.carts.close_after_payment, cart_id)
        except (PawcartError, SQLAlchemyError) as e:
            logger.error(f"Order {order_id}: cart {cart_id} could not be closed: {e}")

        if self.reconcilers is not None:
            self.reconcilers.discard(cart_id)

    async def machine(self, order_id: int, user_id: str) -> PaymentConfirmation:
        await asyncio.to_thread(self._owned_order, order_id, user_id)
        return await PaymentConfirmation.resume(
            order_id, self.channel, OrderGate(self.orders), on_finalized=self._after_payment
        )

    async def request_otp(self, order_id: int, user_id: str, email: str, card: dict) -> PaymentConfirmation:
        machine = await self.machine(order_id, user_id)
        await machine.request_challenge(email, card)
        return machine

    async def verify_otp(self, order_id: int, user_id: str, code) -> tuple[PaymentConfirmation, VerificationResult]:
        machine = await self.machine(order_id, user_id)
        result = await machine.verify(code)
        return machine, result

    async def cancel_otp(self, order_id: int, user_id: str) -> PaymentConfirmation:
        machine = await self.machine(order_id, user_id)
        await machine.cancel()
        return machine
