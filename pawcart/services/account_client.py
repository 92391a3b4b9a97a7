# pawcart/services/account_client.py
import httpx
import requests

from pawcart.domain.errors import BalanceUnavailable
from pawcart.utils.retry import bounded_retrying, http_retry
from pawcart.utils.settings import (
    ACCOUNT_SERVICE_URL,
    HTTP_TIMEOUT_SECONDS,
    BALANCE_FETCH_ATTEMPTS,
    BALANCE_RETRY_DELAY_SECONDS,
)
from pawcart.utils.logging import get_logger

logger = get_logger(__name__)


class BalanceNotReady(Exception):
    """Credential not ready yet, upstream down, or answer unusable. Retried."""


def points_from_payload(data) -> int:
    user = data.get("user", data) if isinstance(data, dict) else None
    if not isinstance(user, dict):
        raise BalanceNotReady("Malformed account payload")
    for key in ("loyalty_points", "loyaltyPoints"):
        value = user.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return max(value, 0)
    raise BalanceNotReady("Account payload carries no points balance")


class AccountClient:
    """
    Account/loyalty service.

    - get_points_balance: authoritative read, bounded retry (fixed attempts, fixed delay)
    - derive_balance_from_history: fallback, sum of points awarded on appointments
    - deduct_points: sync, used from the celery task after payment
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        attempts: int = BALANCE_FETCH_ATTEMPTS,
        retry_delay: float = BALANCE_RETRY_DELAY_SECONDS,
    ):
        self.base_url = (base_url or ACCOUNT_SERVICE_URL).rstrip("/")
        self.timeout = timeout
        self._client = client
        self.attempts = attempts
        self.retry_delay = retry_delay

    @property
    def client(self) -> httpx.AsyncClient:
        #created on first async use; the celery task only needs requests
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _read_balance(self, account_ref: str) -> int:
        url = f"{self.base_url}/accounts/{account_ref}"
        try:
            resp = await self.client.get(url)
        except httpx.TransportError as e:
            raise BalanceNotReady(f"transport: {e.__class__.__name__}") from e

        #401/403: credential not issued yet, same as the token-not-ready case
        if resp.status_code in (401, 403) or resp.status_code >= 500:
            raise BalanceNotReady(f"{url} answered {resp.status_code}")
        if resp.status_code != 200:
            raise BalanceUnavailable(account_ref, f"account service answered {resp.status_code}")
        try:
            return points_from_payload(resp.json())
        except ValueError as e:
            raise BalanceNotReady("Malformed account payload") from e

    async def get_points_balance(self, account_ref: str) -> int:
        logger.info(f"AccountClient reading points balance of {account_ref}")
        try:
            async for attempt in bounded_retrying(self.attempts, self.retry_delay, BalanceNotReady):
                with attempt:
                    return await self._read_balance(account_ref)
        except BalanceNotReady as e:
            raise BalanceUnavailable(account_ref, str(e)) from e

    async def _appointments(self, account_ref: str) -> list:
        resp = await self.client.get(f"{self.base_url}/appointments/owner/{account_ref}")
        if resp.status_code == 404:
            #owner-scoped route missing: filter the full list ourselves
            resp = await self.client.get(f"{self.base_url}/appointments")
            resp.raise_for_status()
            data = resp.json()
            if not isinstance(data, list):
                return []
            return [a for a in data if isinstance(a, dict) and str(a.get("user_id")) == account_ref]
        resp.raise_for_status()
        data = resp.json()
        return data if isinstance(data, list) else []

    async def derive_balance_from_history(self, account_ref: str) -> int:
        try:
            appointments = await self._appointments(account_ref)
        except (httpx.HTTPError, ValueError) as e:
            raise BalanceUnavailable(account_ref, f"history unavailable: {e.__class__.__name__}") from e

        total = 0
        for appointment in appointments:
            if not isinstance(appointment, dict):
                continue
            try:
                total += int(appointment.get("points_awarded") or 0)
            except (TypeError, ValueError):
                continue
        return max(total, 0)

    @http_retry()
    def deduct_points(self, account_ref: str, points: int) -> dict:
        url = f"{self.base_url}/accounts/{account_ref}/points/deduct"
        logger.info(f"AccountClient POST {url} ({points} points)")

        resp = requests.post(url, json={"points": points}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
