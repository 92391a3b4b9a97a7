# pawcart/services/loyalty.py
import asyncio
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Protocol

from pawcart.domain.errors import BalanceUnavailable
from pawcart.utils.settings import DELIVERY_FEE, POINT_VALUE, POINTS_BLOCK
from pawcart.utils.logging import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# LoyaltyDiscountEngine: pure redemption arithmetic
# ---------------------------------------------------------------------------


def available_points(balance: int, block: int = POINTS_BLOCK) -> int:
    """Redeemable points: the balance rounded down to a whole block."""
    return (max(balance, 0) // block) * block


def clamp_selection(requested: int, available: int, block: int = POINTS_BLOCK) -> int:
    clamped = min(max(requested, 0), max(available, 0))
    return (clamped // block) * block


def discount_for(
    selected_points: int,
    subtotal: Decimal,
    delivery_fee: Decimal = DELIVERY_FEE,
    point_value: Decimal = POINT_VALUE,
) -> Decimal:
    #never more than what is payable, so the total can't go negative
    return min(point_value * max(selected_points, 0), subtotal + delivery_fee)


def order_total(subtotal: Decimal, delivery_fee: Decimal, discount: Decimal) -> Decimal:
    return max(Decimal("0.00"), subtotal + delivery_fee - discount)


# ---------------------------------------------------------------------------
# Dual-source balance
# ---------------------------------------------------------------------------


class BalanceSource(str, Enum):
    NONE = "none"
    FALLBACK = "fallback"
    AUTHORITATIVE = "authoritative"


@dataclass
class LoyaltySelection:
    """
    Balance plus the user's current selection. Every balance change re-clamps
    the selection, so a stale higher estimate can never survive the
    authoritative answer.
    """

    balance: int = 0
    source: BalanceSource = BalanceSource.NONE
    selected: int = 0

    @property
    def available(self) -> int:
        return available_points(self.balance)

    def apply_balance(self, value: int, source: BalanceSource) -> bool:
        if source is BalanceSource.FALLBACK and self.source is BalanceSource.AUTHORITATIVE:
            return False
        self.balance = max(value, 0)
        self.source = source
        self.selected = clamp_selection(self.selected, self.available)
        return True

    def select(self, requested: int) -> int:
        self.selected = clamp_selection(requested, self.available)
        return self.selected

    def discount(self, subtotal: Decimal, delivery_fee: Decimal = DELIVERY_FEE) -> Decimal:
        return discount_for(self.selected, subtotal, delivery_fee)


class BalanceSources(Protocol):
    async def get_points_balance(self, account_ref: str) -> int: ...

    async def derive_balance_from_history(self, account_ref: str) -> int: ...


class LoyaltyBalanceTracker:
    """
    Resolves an account's points from two sources at once.

    The history-derived fallback is shown only until the account service
    answers; after that the authoritative value always wins. close() stops
    both reads (and any pending retry) when the owning flow goes away.
    """

    def __init__(self, sources: BalanceSources, account_ref: str, selection: LoyaltySelection | None = None):
        self.sources = sources
        self.account_ref = account_ref
        self.selection = selection or LoyaltySelection()
        self._tasks: list[asyncio.Task] = []
        self._closed = False

    async def _authoritative(self) -> None:
        try:
            value = await self.sources.get_points_balance(self.account_ref)
        except BalanceUnavailable as e:
            logger.warning(f"Authoritative balance unavailable for {self.account_ref}: {e.reason}")
            return
        if not self._closed:
            self.selection.apply_balance(value, BalanceSource.AUTHORITATIVE)
            logger.info(f"Authoritative balance for {self.account_ref}: {value}")

    async def _fallback(self) -> None:
        try:
            value = await self.sources.derive_balance_from_history(self.account_ref)
        except BalanceUnavailable as e:
            logger.warning(f"Fallback balance unavailable for {self.account_ref}: {e.reason}")
            return
        if not self._closed and self.selection.apply_balance(value, BalanceSource.FALLBACK):
            logger.info(f"Fallback balance for {self.account_ref}: {value}")

    async def refresh(self) -> LoyaltySelection:
        if self._closed:
            raise RuntimeError("Balance tracker is closed")

        self._tasks = [
            asyncio.ensure_future(self._fallback()),
            asyncio.ensure_future(self._authoritative()),
        ]
        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            if not self._closed:
                raise
        finally:
            self._tasks = []
        return self.selection

    def close(self) -> None:
        self._closed = True
        for task in self._tasks:
            task.cancel()
