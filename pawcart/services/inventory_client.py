# pawcart/services/inventory_client.py
import httpx
from tenacity import RetryError

from pawcart.domain.errors import ProductNotFound, TransientFetchError
from pawcart.domain.models import InventorySnapshot, ProductStatus
from pawcart.utils.retry import UpstreamUnavailable, async_http_retrying
from pawcart.utils.settings import INVENTORY_SERVICE_URL, HTTP_TIMEOUT_SECONDS
from pawcart.utils.logging import get_logger

logger = get_logger(__name__)

_QTY_KEYS = ("available_qty", "pQuantity", "quantity")


def snapshot_from_payload(product_ref: str, data: dict) -> InventorySnapshot:
    qty = None
    for key in _QTY_KEYS:
        if data.get(key) is not None:
            qty = data[key]
            break
    try:
        qty = int(qty)
    except (TypeError, ValueError):
        raise TransientFetchError(product_ref, "Malformed stock level")

    #absent status means the catalog predates the Active/Inactive flag
    raw_status = str(data.get("status") or ProductStatus.ACTIVE.value)
    status = (
        ProductStatus.ACTIVE
        if raw_status.strip().lower() == "active"
        else ProductStatus.INACTIVE
    )
    return InventorySnapshot(product_ref=product_ref, available_qty=max(qty, 0), status=status)


class InventoryClient:
    """
    Live inventory lookup: getProduct(productRef) -> snapshot | NotFound | TransientError.
    Transport errors and 5xx are retried; after that they surface as TransientFetchError.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        attempts: int = 3,
        backoff: float = 0.3,
    ):
        self.base_url = (base_url or INVENTORY_SERVICE_URL).rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.attempts = attempts
        self.backoff = backoff

    async def _fetch(self, product_ref: str) -> dict:
        url = f"{self.base_url}/products/{product_ref}"
        logger.info(f"InventoryClient GET {url}")

        resp = await self.client.get(url)
        if resp.status_code == 404:
            raise ProductNotFound(product_ref)
        if resp.status_code >= 500:
            raise UpstreamUnavailable(f"{url} answered {resp.status_code}")
        resp.raise_for_status()
        return resp.json()

    async def get_product(self, product_ref: str) -> InventorySnapshot:
        try:
            async for attempt in async_http_retrying(self.attempts, self.backoff):
                with attempt:
                    data = await self._fetch(product_ref)
        except (httpx.HTTPError, UpstreamUnavailable, RetryError, ValueError) as e:
            raise TransientFetchError(product_ref, str(e) or e.__class__.__name__) from e

        if not isinstance(data, dict):
            raise TransientFetchError(product_ref, "Malformed inventory payload")
        return snapshot_from_payload(product_ref, data)

    async def aclose(self) -> None:
        await self.client.aclose()
