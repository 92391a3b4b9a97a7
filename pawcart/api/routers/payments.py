# pawcart/api/routers/payments.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pawcart.api.deps import get_otp_channel, get_reconcilers
from pawcart.api.errors import to_http
from pawcart.data.database import get_db
from pawcart.domain.errors import PawcartError
from pawcart.domain.schemas import ConfirmationOut, OtpRequestIn, OtpVerifyIn
from pawcart.services.payment_confirmation import VerifyOutcome
from pawcart.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])

_MESSAGES = {
    VerifyOutcome.MATCH: "Payment confirmed",
    VerifyOutcome.MISMATCH: "Invalid OTP",
    VerifyOutcome.EXPIRED: "OTP expired, request a new one",
    VerifyOutcome.MALFORMED: "OTP must be 6 digits",
    VerifyOutcome.NO_CHALLENGE: "No OTP requested for this order",
}


def get_service(db: Session, channel, reconcilers=None):
    return PaymentService(db, channel, reconcilers)


@router.post("/{order_id}/otp", response_model=ConfirmationOut)
async def request_otp(
    order_id: int,
    payload: OtpRequestIn,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    channel=Depends(get_otp_channel),
):
    svc = get_service(db, channel)
    try:
        machine = await svc.request_otp(order_id, user_id, payload.email, payload.card.model_dump())
    except (PawcartError, PermissionError) as e:
        raise to_http(e)

    return {
        "order_id": order_id,
        "state": machine.state.value,
        "attempts_used": machine.attempts_used,
        "expires_at": machine.expires_at,
        "message": "OTP sent successfully",
    }


@router.post("/{order_id}/otp/verify", response_model=ConfirmationOut)
async def verify_otp(
    order_id: int,
    payload: OtpVerifyIn,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    channel=Depends(get_otp_channel),
    reconcilers=Depends(get_reconcilers),
):
    """
    Recoverable outcomes (mismatch, expiry, malformed input) come back as 200
    with the outcome set; only finalization conflicts are errors.
    """
    svc = get_service(db, channel, reconcilers)
    try:
        machine, result = await svc.verify_otp(order_id, user_id, payload.code)
    except (PawcartError, PermissionError) as e:
        raise to_http(e)

    return {
        "order_id": order_id,
        "state": result.state.value,
        "outcome": result.outcome.value,
        "attempts_used": result.attempts_used,
        "expires_at": machine.expires_at,
        "message": _MESSAGES[result.outcome],
    }


@router.delete("/{order_id}/otp", response_model=ConfirmationOut)
async def cancel_otp(
    order_id: int,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    channel=Depends(get_otp_channel),
):
    svc = get_service(db, channel)
    try:
        machine = await svc.cancel_otp(order_id, user_id)
    except (PawcartError, PermissionError) as e:
        raise to_http(e)

    return {
        "order_id": order_id,
        "state": machine.state.value,
        "message": "OTP cancelled",
    }
