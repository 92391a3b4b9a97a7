# pawcart/services/cart_service.py
from typing import Dict, Any
from sqlalchemy.orm import Session

from pawcart.data.models.cart import CartModel
from pawcart.data.models.cart_item import CartItemModel
from pawcart.domain.errors import CartNotFound, ConcurrencyConflict, LineNotFound, ValidationError
from pawcart.domain.models import CartLine
from pawcart.repos.cart_repo import CartRepo
from pawcart.services.cart_ledger import CartLedger, line_from_payload
from pawcart.utils.logging import get_logger
from pawcart.utils.retry import conflict_retry

logger = get_logger(__name__)


def _cart_dict(cart: CartModel, ledger: CartLedger) -> Dict[str, Any]:
    return {
        "cart_id": cart.id,
        "user_id": cart.user_id,
        "status": cart.status,
        "items": [
            {
                "product_ref": line.product_ref,
                "quantity": line.requested_qty,
                "unit_price": line.unit_price,
                "display_name": line.display_name,
                "image_ref": line.image_ref,
            }
            for line in ledger.lines
        ],
        "subtotal": ledger.subtotal,
    }


class CartService:
    """
    Persistent carts on top of CartLedger.
    commands (create, set_quantity, remove, clear, close) change state,
    queries (get_cart, load_ledger) only read.
    Every command bumps the cart version under optimistic locking.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)

    #query
    def _owned_cart(self, cart_id: int, user_id: str) -> CartModel:
        cart = self.repo.get_cart(cart_id)

        if not cart:
            raise CartNotFound(cart_id)

        if cart.user_id != user_id:
            raise PermissionError("No access to this cart")

        return cart

    def load_ledger(self, cart_id: int, user_id: str) -> CartLedger:
        self._owned_cart(cart_id, user_id)
        items = self.repo.get_cart_items(cart_id)
        return CartLedger(
            CartLine(
                product_ref=i.product_ref,
                requested_qty=i.quantity,
                unit_price=i.price,
                display_name=i.display_name,
                image_ref=i.image_ref,
            )
            for i in items
        )

    def get_cart(self, cart_id: int, user_id: str) -> Dict[str, Any]:
        cart = self._owned_cart(cart_id, user_id)
        return _cart_dict(cart, self.load_ledger(cart_id, user_id))

    #commands
    def create_cart(self, user_id: str) -> Dict[str, Any]:
        #one active cart per user
        existing = self.repo.get_active_cart_by_user(user_id)

        if existing:
            logger.info(f"User {user_id} already has active cart {existing.id}")
            return self.get_cart(existing.id, user_id)

        created = self.repo.create_cart(CartModel(user_id=user_id, status="ACTIVE", version=1))

        logger.info(f"Created cart {created.id} for user {user_id}")

        return self.get_cart(created.id, user_id)

    def _active(self, cart_id: int, user_id: str) -> CartModel:
        cart = self._owned_cart(cart_id, user_id)
        if cart.status != "ACTIVE":
            raise ValidationError.single("cart", "status", "cart can no longer be modified")
        return cart

    def _bump_version(self, cart: CartModel, extra: dict | None = None) -> None:
        old_version = cart.version
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=old_version,
            new_data={"version": old_version + 1, **(extra or {})},
        )

        #UPDATE ... WHERE id = :id AND version = :old matched nothing
        if rowcount == 0:
            self.repo.rollback()
            raise ConcurrencyConflict(cart.id)

        self.repo.commit()
        logger.info(f"Cart {cart.id} new version: {old_version + 1}")

    def set_quantity(
        self,
        user_id: str,
        cart_id: int,
        product_ref: str,
        quantity: int,
        line_data: dict | None = None,
    ) -> Dict[str, Any]:
        """
        Set the quantity of a line. If the product is not in the cart yet,
        line_data (price snapshot, name, image) is required to create it.
        """
        cart = self._active(cart_id, user_id)
        ledger = self.load_ledger(cart_id, user_id)

        if line_data is not None:
            #fresh snapshot from the catalog replaces the old one
            line = ledger.add(line_from_payload({**line_data, "product_ref": product_ref, "quantity": quantity}))
        elif product_ref in ledger:
            line = ledger.set_quantity(product_ref, quantity)
        else:
            raise LineNotFound(product_ref)

        item = self.repo.get_cart_item(cart_id, product_ref)
        if item:
            logger.info(f"Product {product_ref} in cart {cart_id}: quantity {item.quantity} -> {line.requested_qty}")
            item.quantity = line.requested_qty
            if line_data is not None:
                item.price = line.unit_price
                item.display_name = line.display_name
                item.image_ref = line.image_ref
            self.repo.add_cart_item(item)
        else:
            logger.info(f"Adding product {product_ref} to cart {cart_id}")
            self.repo.add_cart_item(
                CartItemModel(
                    cart_id=cart_id,
                    product_ref=line.product_ref,
                    quantity=line.requested_qty,
                    price=line.unit_price,
                    display_name=line.display_name,
                    image_ref=line.image_ref,
                )
            )

        self._bump_version(cart)
        return self.get_cart(cart_id, user_id)

    def remove_product(self, user_id: str, cart_id: int, product_ref: str) -> Dict[str, Any]:
        cart = self._active(cart_id, user_id)

        logger.info(f"Removing product {product_ref} from cart {cart_id}")

        if self.repo.delete_cart_item(cart_id, product_ref) == 0:
            self.repo.rollback()
            raise LineNotFound(product_ref)

        self._bump_version(cart)
        return self.get_cart(cart_id, user_id)

    def clear(self, user_id: str, cart_id: int) -> Dict[str, Any]:
        cart = self._active(cart_id, user_id)
        removed = self.repo.delete_cart_items(cart_id)
        logger.info(f"Cleared {removed} line(s) from cart {cart_id}")
        self._bump_version(cart)
        return self.get_cart(cart_id, user_id)

    @conflict_retry(ConcurrencyConflict)
    def close_after_payment(self, cart_id: int) -> None:
        """Paid order: the ledger is destroyed and the cart retired. A concurrent edit is retried."""
        cart = self.repo.get_cart(cart_id)
        if not cart:
            logger.warning(f"Cart {cart_id} vanished before it could be closed")
            return
        self.repo.delete_cart_items(cart_id)
        self._bump_version(cart, {"status": "CHECKED_OUT"})
        logger.info(f"Cart {cart_id} checked out")
