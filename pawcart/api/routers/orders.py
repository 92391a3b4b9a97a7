# pawcart/api/routers/orders.py
from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from pawcart.api.deps import get_account_client, get_inventory_client, get_reconcilers
from pawcart.api.errors import to_http, verdict_dict
from pawcart.data.database import get_db
from pawcart.domain.errors import PawcartError
from pawcart.domain.schemas import CheckoutIn, CheckoutOut, OrderOut
from pawcart.services.checkout_service import CheckoutService
from pawcart.services.stock_reconciler import StockReconciler

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session, inventory, accounts, reconcilers, cart_id: int):
    return CheckoutService(
        db=db,
        coordinator=reconcilers.for_cart(cart_id, StockReconciler(inventory)),
        balance_sources=accounts,
    )


@router.post("/", response_model=CheckoutOut, status_code=201)
async def create_order(
    payload: CheckoutIn,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    inventory=Depends(get_inventory_client),
    accounts=Depends(get_account_client),
    reconcilers=Depends(get_reconcilers),
):
    """
    Checkout submission. Every field error comes back at once (400);
    nothing fulfillable in the cart is a 409.
    """
    svc = get_service(db, inventory, accounts, reconcilers, payload.cart_id)
    try:
        result = await svc.submit(
            user_id=user_id,
            cart_id=payload.cart_id,
            billing=payload.billing.model_dump(),
            shipping=payload.shipping.model_dump() if payload.shipping else None,
            same_as_billing=payload.same_as_billing,
            email=payload.email,
            payment_method=payload.payment_method,
            points=payload.points,
        )
    except (PawcartError, PermissionError) as e:
        raise to_http(e)
    finally:
        reconcilers.release(payload.cart_id)

    return {
        #lazy-loads the order lines, so not on the event loop
        "order": await run_in_threadpool(OrderOut.model_validate, result["order"]),
        "message": result["message"],
        "unavailable": [verdict_dict(v) for v in result["unavailable"]],
    }


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    svc = CheckoutService(db)
    try:
        return svc.get_order(order_id, user_id)
    except (PawcartError, PermissionError) as e:
        raise to_http(e)
