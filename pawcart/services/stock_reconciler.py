# pawcart/services/stock_reconciler.py
import asyncio
import itertools
from decimal import Decimal
from typing import Iterable, Protocol

from pawcart.domain.errors import InventoryError
from pawcart.domain.models import (
    Availability,
    CartLine,
    InventorySnapshot,
    LineVerdict,
    ProductStatus,
    ReconciliationReport,
)
from pawcart.utils.logging import get_logger

logger = get_logger(__name__)


class InventoryLookup(Protocol):
    async def get_product(self, product_ref: str) -> InventorySnapshot: ...


def classify(line: CartLine, snapshot: InventorySnapshot) -> LineVerdict:
    if snapshot.status is not ProductStatus.ACTIVE:
        return LineVerdict(line, Availability.NONE, 0, reason="Inactive")
    if snapshot.available_qty <= 0:
        return LineVerdict(line, Availability.NONE, 0, reason="Out of stock")
    if snapshot.available_qty < line.requested_qty:
        return LineVerdict(line, Availability.PARTIAL, snapshot.available_qty)
    return LineVerdict(line, Availability.FULL, snapshot.available_qty)


class StockReconciler:
    """
    Translates "what the user wants" into "what can actually be charged".

    Every line is fetched independently and concurrently; a failed fetch only
    turns that one line into a None verdict, never the whole pass.
    """

    def __init__(self, inventory: InventoryLookup):
        self.inventory = inventory

    async def _evaluate(self, line: CartLine) -> LineVerdict:
        try:
            snapshot = await self.inventory.get_product(line.product_ref)
        except InventoryError as e:
            logger.warning(f"Stock check failed for {line.product_ref}, treating as unavailable: {e.reason}")
            return LineVerdict(line, Availability.NONE, 0, reason=e.reason)
        return classify(line, snapshot)

    async def reconcile(self, lines: Iterable[CartLine], token: int = 0) -> ReconciliationReport:
        lines = tuple(lines)
        raw = sum((line.line_total for line in lines), Decimal("0.00"))

        #empty cart: nothing to ask the inventory about
        if not lines:
            return ReconciliationReport((), Decimal("0.00"), raw, token)

        verdicts = tuple(await asyncio.gather(*(self._evaluate(line) for line in lines)))
        adjusted = sum((v.charged for v in verdicts), Decimal("0.00"))

        logger.info(
            f"Reconciled {len(verdicts)} line(s): raw {raw}, adjusted {adjusted}, "
            f"{len([v for v in verdicts if v.availability is not Availability.FULL])} conflict(s)"
        )
        return ReconciliationReport(verdicts, adjusted, raw, token)


class ReconciliationCoordinator:
    """
    Owns the reconciliation passes of a single cart.

    Each pass gets a token from a monotonically increasing counter; a pass
    that finishes after a newer one has started is discarded (run() returns
    None) so `latest` always reflects the most recent pass.
    """

    def __init__(self, reconciler: StockReconciler):
        self.reconciler = reconciler
        self._tokens = itertools.count(1)
        self._newest = 0
        self._latest: ReconciliationReport | None = None
        self._newest_task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._closed = False

    @property
    def latest(self) -> ReconciliationReport | None:
        return self._latest

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        return bool(self._in_flight)

    async def run(self, lines: Iterable[CartLine]) -> ReconciliationReport | None:
        if self._closed:
            raise RuntimeError("Reconciliation coordinator is closed")

        token = next(self._tokens)
        self._newest = token
        task = asyncio.ensure_future(self.reconciler.reconcile(tuple(lines), token))
        self._newest_task = task
        self._in_flight.add(task)
        try:
            report = await task
        except asyncio.CancelledError:
            if self._closed:
                return None
            raise
        finally:
            self._in_flight.discard(task)

        if token != self._newest or self._closed:
            logger.info(f"Discarding stale reconciliation pass {token} (newest {self._newest})")
            return None

        self._latest = report
        return report

    async def newest(self) -> ReconciliationReport | None:
        """
        Wait for the newest pass and return its report. A caller whose own pass
        was superseded uses this instead of `latest`, which may be older still.
        """
        while not self._closed:
            task = self._newest_task
            if task is None:
                return self._latest
            token = self._newest
            try:
                #shielded: giving up here must not cancel another caller's pass
                report = await asyncio.shield(task)
            except asyncio.CancelledError:
                if self._closed or task.cancelled():
                    return None
                raise
            if token == self._newest:
                return report
        return None

    def close(self) -> None:
        self._closed = True
        for task in list(self._in_flight):
            task.cancel()


class ReconcilerRegistry:
    """Process-wide map cart_id -> coordinator, opened and closed with the app."""

    def __init__(self):
        self._coordinators: dict[int, ReconciliationCoordinator] = {}

    def for_cart(self, cart_id: int, reconciler: StockReconciler) -> ReconciliationCoordinator:
        coordinator = self._coordinators.get(cart_id)
        if coordinator is None or coordinator.closed:
            coordinator = ReconciliationCoordinator(reconciler)
            self._coordinators[cart_id] = coordinator
        else:
            #the inventory client is per request, keep the newest one
            coordinator.reconciler = reconciler
        return coordinator

    def release(self, cart_id: int) -> None:
        """Drop the cart's coordinator once no pass is in flight."""
        coordinator = self._coordinators.get(cart_id)
        if coordinator is not None and not coordinator.busy:
            del self._coordinators[cart_id]

    def discard(self, cart_id: int) -> None:
        coordinator = self._coordinators.pop(cart_id, None)
        if coordinator is not None:
            coordinator.close()

    def close(self) -> None:
        for coordinator in self._coordinators.values():
            coordinator.close()
        self._coordinators.clear()

    def __len__(self) -> int:
        return len(self._coordinators)
