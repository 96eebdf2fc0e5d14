"""
Dependency injection container for a shopper session.
"""

import logging
from typing import Optional

import httpx

from storefront.application.use_cases.shopper_session_use_case import ShopperSessionUseCase
from storefront.config import Settings, get_config
from storefront.domain.repositories.key_value_repository import KeyValueRepository
from storefront.infrastructure.cache.cache_manager import CacheManager
from storefront.infrastructure.http.request_gateway import RequestGateway
from storefront.infrastructure.storage.cart_store import CartStore
from storefront.infrastructure.storage.key_value_store import (
    InMemoryKeyValueStore,
    SQLAlchemyKeyValueStore,
)
from storefront.infrastructure.storage.token_store import TokenStore
from storefront.services.cart_refresher import CartRefresher
from storefront.services.cart_service import CartService
from storefront.services.catalog_service import CatalogService
from storefront.services.token_service import TokenService
from storefront.session_context import SessionContext

logger = logging.getLogger(__name__)


class Container:
    """
    Builds and owns every collaborator of one session.

    ``persistent_store`` defaults to the SQLAlchemy store at
    ``settings.storage_url``; ``session_store`` is always process-local.
    ``transport`` lets tests route the HTTP client to an in-process fake.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        persistent_store: Optional[KeyValueRepository] = None,
        session_store: Optional[KeyValueRepository] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = settings or get_config()

        persistent = persistent_store or SQLAlchemyKeyValueStore(self.config.storage_url)
        session = session_store or InMemoryKeyValueStore()

        client = httpx.AsyncClient(
            base_url=self.config.commerce_api_url,
            timeout=self.config.request_timeout_seconds,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            transport=transport,
        )

        self.context = SessionContext(
            settings=self.config,
            http_client=client,
            token_store=TokenStore(persistent),
            cart_store=CartStore(persistent, session),
            cache_manager=CacheManager(),
        )
        self.token_service = TokenService(self.context)
        self.gateway = RequestGateway(client, self.token_service)
        self.cart_service = CartService(self.context, self.gateway)
        self.token_service.on_session_ended(self.cart_service.clear)
        self.catalog_service = CatalogService(
            self.gateway,
            self.context.cache_manager,
            category_ttl=self.config.category_cache_ttl_seconds,
            product_ttl=self.config.product_cache_ttl_seconds,
        )
        self.cart_refresher = CartRefresher(
            self.context, self.cart_service, self.config.cart_refresh_interval_seconds
        )
        self.session = ShopperSessionUseCase(
            self.context, self.token_service, self.cart_service, self.cart_refresher
        )
        logger.debug("Container wired for %s", self.config.commerce_api_url)

    async def init(self) -> ShopperSessionUseCase:
        await self.session.initialize()
        return self.session

    async def dispose(self) -> None:
        """Stop background work and release the client and storage"""
        await self.session.shutdown()
        await self.context.dispose()
