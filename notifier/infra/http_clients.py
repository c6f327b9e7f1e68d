# notifier/infra/http_clients.py
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from notifier.errors import CatalogError, DirectoryError, OrderSourceError
from notifier.models.purchase import Order, Product
from notifier.models.user import DirectoryUser

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


def _is_retryable_error(exc: Exception) -> bool:
    if isinstance(exc, httpx.RequestError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class ServiceClient:
    """Thin JSON-over-HTTP client for one upstream service."""

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        attempts: int = 2,
        base_delay_seconds: float = 0.25,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        self._attempts = attempts
        self._base_delay = base_delay_seconds

    async def close(self) -> None:
        await self._client.aclose()

    async def get_json(self, path: str = "", params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        for attempt in range(1, self._attempts + 1):
            try:
                response = await self._client.get(url, params=params)
                response.raise_for_status()
                return response.json()
            except (httpx.RequestError, httpx.HTTPStatusError) as exc:
                if attempt >= self._attempts or not _is_retryable_error(exc):
                    raise
                await asyncio.sleep(self._base_delay * (2 ** (attempt - 1)))


class ProductCatalog(ServiceClient):
    async def get_by_category(self, category: str) -> List[Product]:
        try:
            body = await self.get_json("/category", params={"category": category})
        except httpx.HTTPError as e:
            raise CatalogError(f"Could not fetch products for category {category}: {e}") from e

        products = ((body or {}).get("data") or {}).get("products")
        if not isinstance(products, list):
            raise CatalogError(f"Invalid products payload for category {category}")

        result: List[Product] = []
        for item in products:
            try:
                result.append(Product.model_validate(item))
            except ValueError:
                logger.warning("Skipping malformed product in category %s: %r", category, item)
        return result

    async def get_by_id(self, product_id: str) -> Product:
        try:
            body = await self.get_json(f"/id/{product_id}")
            return Product.model_validate(body["data"]["product"])
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Could not fetch product {product_id}: {e}") from e


class UserDirectory(ServiceClient):
    async def get_email(self, user_id: str) -> Optional[str]:
        try:
            body = await self.get_json(f"/{user_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise DirectoryError(f"Could not fetch user {user_id}: {e}") from e
        except httpx.HTTPError as e:
            raise DirectoryError(f"Could not fetch user {user_id}: {e}") from e

        body = body or {}
        return (body.get("result") or {}).get("email") or body.get("email")

    async def list_users(self) -> List[DirectoryUser]:
        try:
            body = await self.get_json("/")
        except httpx.HTTPError as e:
            raise DirectoryError(f"Failed to retrieve users: {e}") from e

        users: List[DirectoryUser] = []
        for item in (body or {}).get("result") or []:
            try:
                users.append(DirectoryUser.model_validate(item))
            except ValueError:
                logger.warning("Skipping malformed user record: %r", item)
        return users


class OrderSource(ServiceClient):
    async def list_orders(self) -> List[Order]:
        try:
            body = await self.get_json()
        except httpx.HTTPError as e:
            raise OrderSourceError(f"Failed to retrieve orders: {e}") from e

        orders: List[Order] = []
        for item in (body or {}).get("result") or []:
            try:
                orders.append(Order.model_validate(item))
            except ValueError:
                logger.warning("Skipping malformed order: %r", item)
        return orders
