"""
Catalog service

Read-mostly category and product lookups. Results are memoised in the
admin cache scope, which is dropped whenever a new admin token is issued.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from storefront.infrastructure.cache.cache_manager import CacheManager
from storefront.infrastructure.http.request_gateway import RequestGateway
from storefront.infrastructure.utilities.constants import ApiPaths, CacheSettings
from storefront.infrastructure.utilities.exceptions import ValidationError, validate_and_raise

logger = logging.getLogger(__name__)


class CatalogService:
    """Service for category and product lookups"""

    def __init__(
        self,
        gateway: RequestGateway,
        cache_manager: CacheManager,
        category_ttl: float,
        product_ttl: float,
    ):
        self._gateway = gateway
        self._cache = cache_manager
        self._category_ttl = category_ttl
        self._product_ttl = product_ttl

    async def get_categories(self) -> Optional[Dict[str, Any]]:
        """Category tree"""
        return await self._cache.get_or_load(
            CacheSettings.ADMIN_SCOPE,
            "categories",
            lambda: self._gateway.get(ApiPaths.CATEGORIES),
            ttl=self._category_ttl,
        )

    async def get_product(self, sku: str) -> Optional[Dict[str, Any]]:
        validate_and_raise(bool(sku), ValidationError, "SKU is required", field="sku")
        return await self._cache.get_or_load(
            CacheSettings.ADMIN_SCOPE,
            f"product:{sku}",
            lambda: self._gateway.get(f"{ApiPaths.PRODUCTS}/{quote(sku, safe='')}"),
            ttl=self._product_ttl,
        )

    async def search_products(self, **criteria: Any) -> List[Dict[str, Any]]:
        """Uncached product search; criteria are passed as query parameters"""
        result = await self._gateway.get(ApiPaths.PRODUCTS, params=criteria or None)
        items = (result or {}).get("items") or []
        logger.info("Product search %s returned %d items", criteria, len(items))
        return items
