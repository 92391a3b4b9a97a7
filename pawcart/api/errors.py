# pawcart/api/errors.py
from fastapi import HTTPException

from pawcart.domain.errors import (
    BalanceUnavailable,
    CartNotFound,
    ConcurrencyConflict,
    FinalizationConflict,
    LineNotFound,
    OrderNotFound,
    StockConflict,
    ValidationError,
)
from pawcart.domain.models import MarkPaidResult


def verdict_dict(v) -> dict:
    return {
        "product_ref": v.line.product_ref,
        "display_name": v.line.display_name,
        "availability": v.availability.value,
        "requested_qty": v.line.requested_qty,
        "available_qty": v.available_qty,
        "chargeable_qty": v.chargeable_qty,
        "shortfall": v.shortfall,
        "charged": v.charged,
        "reason": v.reason,
    }


def to_http(e: Exception) -> HTTPException:
    """Map a domain exception onto the HTTP status the routers answer with."""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail={"errors": [err.as_dict() for err in e.errors]})
    if isinstance(e, PermissionError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, (CartNotFound, OrderNotFound, LineNotFound)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, StockConflict):
        return HTTPException(
            status_code=409,
            detail={"message": str(e), "verdicts": [
                {k: str(val) if k == "charged" else val for k, val in verdict_dict(v).items()}
                for v in e.verdicts
            ]},
        )
    if isinstance(e, FinalizationConflict):
        status = 404 if e.reason == MarkPaidResult.NOT_FOUND.value else 409
        return HTTPException(status_code=status, detail=str(e))
    if isinstance(e, ConcurrencyConflict):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, BalanceUnavailable):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))
