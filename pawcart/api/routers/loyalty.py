# pawcart/api/routers/loyalty.py
from decimal import Decimal

from fastapi import APIRouter, Depends, Query

from pawcart.api.deps import get_account_client
from pawcart.domain.schemas import LoyaltyOut
from pawcart.services.loyalty import LoyaltyBalanceTracker, LoyaltySelection

router = APIRouter(prefix="/loyalty", tags=["loyalty"])


@router.get("/{account_ref}", response_model=LoyaltyOut)
async def get_loyalty(
    account_ref: str,
    requested: int = Query(0),
    subtotal: Decimal = Query(Decimal("0"), ge=0),
    accounts=Depends(get_account_client),
):
    """
    Points preview for the checkout form: resolved balance, its source,
    the redeemable amount and the clamped selection with its discount.
    """
    tracker = LoyaltyBalanceTracker(accounts, account_ref, LoyaltySelection())
    try:
        selection = await tracker.refresh()
    finally:
        tracker.close()
    selection.select(requested)

    return {
        "account_ref": account_ref,
        "balance": selection.balance,
        "source": selection.source.value,
        "available_points": selection.available,
        "selected_points": selection.selected,
        "discount": selection.discount(subtotal),
    }
