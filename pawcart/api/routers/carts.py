#pawcart/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from pawcart.api.deps import get_inventory_client, get_reconcilers
from pawcart.api.errors import to_http, verdict_dict
from pawcart.data.database import get_db
from pawcart.domain.errors import PawcartError
from pawcart.domain.schemas import (
    AvailabilityOut,
    CartLineIn,
    CartOut,
    CreateCartIn,
)
from pawcart.services.cart_service import CartService
from pawcart.services.stock_reconciler import StockReconciler

router = APIRouter(prefix="/carts", tags=["carts"])


def get_service(db: Session):
    return CartService(db)


@router.post("/", response_model=CartOut)
def create_cart(payload: CreateCartIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.create_cart(payload.user_id)


@router.get("/{cart_id}", response_model=CartOut)
def get_cart(
    cart_id: int,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.get_cart(cart_id, user_id)
    except (PawcartError, PermissionError) as e:
        raise to_http(e)


@router.put("/{cart_id}/items/{product_ref}", response_model=CartOut)
def set_item(
    cart_id: int,
    product_ref: str,
    payload: CartLineIn,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    line_data = None
    if payload.unit_price is not None:
        line_data = {
            "unit_price": payload.unit_price,
            "display_name": payload.display_name,
            "image_ref": payload.image_ref,
        }
    try:
        return svc.set_quantity(
            user_id=user_id,
            cart_id=cart_id,
            product_ref=product_ref,
            quantity=payload.quantity,
            line_data=line_data,
        )
    except (PawcartError, PermissionError) as e:
        raise to_http(e)


@router.delete("/{cart_id}/items/{product_ref}", response_model=CartOut)
def remove_item(
    cart_id: int,
    product_ref: str,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.remove_product(user_id, cart_id, product_ref)
    except (PawcartError, PermissionError) as e:
        raise to_http(e)


@router.delete("/{cart_id}/items", response_model=CartOut)
def clear_cart(
    cart_id: int,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.clear(user_id, cart_id)
    except (PawcartError, PermissionError) as e:
        raise to_http(e)


@router.get("/{cart_id}/availability", response_model=AvailabilityOut)
async def get_availability(
    cart_id: int,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    inventory=Depends(get_inventory_client),
    reconcilers=Depends(get_reconcilers),
):
    """
    Re-runs the stock check now. If a newer check for the same cart started
    meanwhile, this one is dropped and the newer report is awaited instead.
    """
    svc = get_service(db)
    try:
        ledger = await run_in_threadpool(svc.load_ledger, cart_id, user_id)
    except (PawcartError, PermissionError) as e:
        raise to_http(e)

    coordinator = reconcilers.for_cart(cart_id, StockReconciler(inventory))
    try:
        report = await coordinator.run(ledger.lines)
        if report is None:
            report = await coordinator.newest()
    finally:
        reconcilers.release(cart_id)
    if report is None:
        raise HTTPException(status_code=409, detail="Stock check superseded, try again")

    return {
        "cart_id": cart_id,
        "verdicts": [verdict_dict(v) for v in report.verdicts],
        "raw_subtotal": report.raw_subtotal,
        "adjusted_subtotal": report.adjusted_subtotal,
        "all_available": report.all_full,
    }
