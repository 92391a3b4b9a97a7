#import all models so SQLAlchemy registers them in Base.metadata

from pawcart.data.models.cart import CartModel
from pawcart.data.models.cart_item import CartItemModel
from pawcart.data.models.order import OrderModel
from pawcart.data.models.order_item import OrderItemModel

__all__ = ["CartModel", "CartItemModel", "OrderModel", "OrderItemModel"]
