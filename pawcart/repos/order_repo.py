# pawcart/repos/order_repo.py
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from pawcart.data.models.order import OrderModel
from pawcart.data.models.order_item import OrderItemModel
from pawcart.domain.models import MarkPaidResult, OrderDraft, OrderStatus


class OrderRepo:
    """Order persistence: createDraft(OrderDraft) -> orderRef, markPaid(orderRef)."""

    def __init__(self, db: Session):
        self.db = db

    def create_draft(self, draft: OrderDraft, cart_id: int, user_id: str) -> OrderModel:
        order = OrderModel(
            cart_id=cart_id,
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            subtotal=draft.subtotal,
            delivery_fee=draft.delivery_fee,
            points_redeemed=draft.points_redeemed,
            discount=draft.discount,
            total=draft.total,
            payment_method=draft.payment_method.value,
            contact_email=draft.contact_email,
            billing_address=draft.billing_address.as_dict(),
            shipping_address=draft.shipping_address.as_dict(),
            items=[
                OrderItemModel(
                    product_ref=line.product_ref,
                    name=line.name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for line in draft.line_items
            ],
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def is_paid(self, order_id: int) -> bool:
        order = self.get_order(order_id)
        return order is not None and order.status == OrderStatus.PAID.value

    def mark_paid(self, order_id: int) -> MarkPaidResult:
        #conditional update: only a PENDING order can become PAID, exactly once
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == OrderStatus.PENDING.value)
            .values(status=OrderStatus.PAID.value, paid_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            self.db.commit()
            self.db.expire_all()
            return MarkPaidResult.OK

        self.db.rollback()
        if self.get_order(order_id) is None:
            return MarkPaidResult.NOT_FOUND
        return MarkPaidResult.ALREADY_PAID
