# pawcart/services/payment_confirmation.py
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Protocol

from pawcart.domain.errors import FinalizationConflict, ValidationError
from pawcart.domain.models import MarkPaidResult, OTPChallenge, VerificationOutcome
from pawcart.domain.validation import CardForm, ContactForm, collect_errors, is_well_formed_otp
from pawcart.utils.logging import get_logger

logger = get_logger(__name__)


class ConfirmationState(str, Enum):
    IDLE = "Idle"
    OTP_REQUESTED = "OTPRequested"
    FINALIZED = "OTPVerified"


class VerifyOutcome(str, Enum):
    MATCH = "Match"
    MISMATCH = "Mismatch"
    EXPIRED = "Expired"
    MALFORMED = "Malformed"
    NO_CHALLENGE = "NoChallenge"


@dataclass(frozen=True)
class VerificationResult:
    outcome: VerifyOutcome
    state: ConfirmationState
    attempts_used: int

    @property
    def paid(self) -> bool:
        return self.state is ConfirmationState.FINALIZED


class OtpChannel(Protocol):
    async def issue(self, order_ref: str, destination: str) -> OTPChallenge: ...

    async def check(self, challenge_id: str, code: str) -> VerificationOutcome: ...

    async def latest_challenge(self, order_ref: str) -> OTPChallenge | None: ...

    async def revoke(self, challenge: OTPChallenge) -> None: ...


class OrderFinalizer(Protocol):
    async def mark_paid(self, order_id: int) -> MarkPaidResult: ...

    async def is_paid(self, order_id: int) -> bool: ...


class PaymentConfirmation:
    """
    OTP gate between a submitted order and a paid one.

        Idle --request--> OTPRequested --verify(match)--> OTPVerified
        OTPRequested --verify(mismatch)--> OTPRequested (attempt counted)
        OTPRequested --expiry / cancel--> Idle

    A Match from the channel is the only path that calls mark_paid.
    """

    def __init__(
        self,
        order_ref: int,
        channel: OtpChannel,
        orders: OrderFinalizer,
        on_finalized: Callable[[int], Awaitable[None] | None] | None = None,
    ):
        self.order_ref = order_ref
        self.channel = channel
        self.orders = orders
        self.on_finalized = on_finalized
        self.state = ConfirmationState.IDLE
        self.challenge: OTPChallenge | None = None

    @classmethod
    async def resume(cls, order_ref: int, channel: OtpChannel, orders: OrderFinalizer, on_finalized=None):
        """Rebuild the machine for an order from what the order store and channel know."""
        machine = cls(order_ref, channel, orders, on_finalized)
        if await orders.is_paid(order_ref):
            machine.state = ConfirmationState.FINALIZED
            return machine
        #an expired or locked-out challenge is picked up too, so verify can answer Expired
        challenge = await channel.latest_challenge(str(order_ref))
        if challenge is not None:
            machine.state = ConfirmationState.OTP_REQUESTED
            machine.challenge = challenge
        return machine

    @property
    def attempts_used(self) -> int:
        return self.challenge.attempts_used if self.challenge else 0

    @property
    def expires_at(self) -> datetime | None:
        return self.challenge.expires_at if self.challenge else None

    def _result(self, outcome: VerifyOutcome) -> VerificationResult:
        return VerificationResult(outcome, self.state, self.attempts_used)

    async def request_challenge(self, email: str, card: dict) -> OTPChallenge:
        if self.state is ConfirmationState.FINALIZED:
            raise FinalizationConflict(self.order_ref, MarkPaidResult.ALREADY_PAID.value)

        errors = collect_errors(ContactForm, {"email": email}, "contact")
        errors += collect_errors(CardForm, card, "card")
        if errors:
            raise ValidationError(errors)

        #a second request replaces the live code rather than stacking another one
        self.challenge = await self.channel.issue(str(self.order_ref), email.strip())
        self.state = ConfirmationState.OTP_REQUESTED
        logger.info(f"Order {self.order_ref}: OTP requested")
        return self.challenge

    async def verify(self, code) -> VerificationResult:
        #malformed input never reaches the channel and costs no attempt
        if not is_well_formed_otp(code):
            return self._result(VerifyOutcome.MALFORMED)

        if self.state is ConfirmationState.FINALIZED:
            raise FinalizationConflict(self.order_ref, MarkPaidResult.ALREADY_PAID.value)
        if self.state is not ConfirmationState.OTP_REQUESTED or self.challenge is None:
            return self._result(VerifyOutcome.NO_CHALLENGE)

        outcome = await self.channel.check(self.challenge.challenge_id, code)

        if outcome is VerificationOutcome.EXPIRED:
            logger.info(f"Order {self.order_ref}: OTP expired, back to Idle")
            self.state = ConfirmationState.IDLE
            self.challenge = None
            return self._result(VerifyOutcome.EXPIRED)

        if outcome is VerificationOutcome.MISMATCH:
            self.challenge.attempts_used += 1
            logger.info(f"Order {self.order_ref}: OTP mismatch ({self.challenge.attempts_used} attempt(s))")
            return self._result(VerifyOutcome.MISMATCH)

        marked = await self.orders.mark_paid(self.order_ref)
        if marked is not MarkPaidResult.OK:
            logger.error(f"Order {self.order_ref}: OTP matched but markPaid answered {marked.value}")
            self.state = ConfirmationState.IDLE
            self.challenge = None
            raise FinalizationConflict(self.order_ref, marked.value)

        self.state = ConfirmationState.FINALIZED
        logger.info(f"Order {self.order_ref}: paid")
        if self.on_finalized is not None:
            maybe = self.on_finalized(self.order_ref)
            if maybe is not None:
                await maybe
        return VerificationResult(VerifyOutcome.MATCH, self.state, self.attempts_used)

    async def cancel(self) -> None:
        if self.state is ConfirmationState.OTP_REQUESTED and self.challenge is not None:
            await self.channel.revoke(self.challenge)
            logger.info(f"Order {self.order_ref}: OTP challenge cancelled")
        if self.state is not ConfirmationState.FINALIZED:
            self.state = ConfirmationState.IDLE
            self.challenge = None
