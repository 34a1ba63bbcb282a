# storefront/services/product_client.py
import requests

from storefront.domain.errors import InsufficientStock, ProductNotFound
from storefront.domain.schemas import ProductSnapshot
from storefront.utils.retry import http_retry
from storefront.utils.settings import PRODUCT_SERVICE_URL, HTTP_TIMEOUT_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class ProductClient:
    """HTTP client for the catalog service."""

    def __init__(self, base_url: str | None = None, timeout: int = HTTP_TIMEOUT_SECONDS):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def get_product(self, product_id: int) -> ProductSnapshot | None:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return ProductSnapshot.model_validate(resp.json())

    # not retried: a timed out PATCH may already have been applied
    def adjust_stock(self, product_id: int, delta: int) -> int:
        url = f"{self.base_url}/products/{product_id}/stock"
        logger.info(f"ProductClient PATCH {url} delta={delta}")

        resp = requests.patch(url, json={"quantity": delta}, timeout=self.timeout)
        if resp.status_code == 404:
            raise ProductNotFound(product_id)
        if resp.status_code == 409:
            raise InsufficientStock(product_id)
        resp.raise_for_status()
        return resp.json()["stock"]


def get_product_client() -> ProductClient:
    return ProductClient()
