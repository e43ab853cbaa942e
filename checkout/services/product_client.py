# checkout/services/product_client.py
from decimal import Decimal
from typing import Optional, Tuple

import requests

from checkout.domain.errors import CatalogError, ProductNotFoundError
from checkout.domain.pricing import quantize
from checkout.utils.retry import http_retry
from checkout.utils.settings import PRODUCT_SERVICE_URL
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class ProductClient:
    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def _get(self, url: str) -> requests.Response:
        return requests.get(url, timeout=self.timeout)

    def fetch_product(self, product_id: int) -> dict:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        try:
            resp = self._get(url)
        except requests.RequestException as e:
            logger.error(f"Katalog niedostepny ({url}): {e}")
            raise CatalogError(f"Katalog niedostepny dla produktu {product_id}: {e}") from e
        if resp.status_code == 404:
            raise ProductNotFoundError(f"Produkt {product_id} nie istnieje")
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise CatalogError(f"Katalog zwrocil blad dla produktu {product_id}: {e}") from e
        return resp.json()

    def resolve(self, product_id: int, variant_id: Optional[int] = None) -> Tuple[Decimal, str, int]:
        """
        Aktualna cena, nazwa i stan magazynu dla produktu / wariantu.
        Cena wariantu ma pierwszenstwo przed cena produktu.
        """
        pdata = self.fetch_product(product_id)
        if variant_id is None:
            return quantize(Decimal(str(pdata["price"]))), pdata["name"], int(pdata.get("inventory", 0))

        for variant in pdata.get("variants", []):
            if int(variant["id"]) == variant_id:
                price = variant.get("price", pdata["price"])
                name = f"{pdata['name']} - {variant['name']}"
                return quantize(Decimal(str(price))), name, int(variant.get("inventory", 0))

        raise ProductNotFoundError(f"Wariant {variant_id} produktu {product_id} nie istnieje")
