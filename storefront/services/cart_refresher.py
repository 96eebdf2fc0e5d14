"""
Periodic background refresh of the customer cart
"""

import asyncio
import contextlib
import logging
from typing import Optional

from storefront.infrastructure.utilities.exceptions import StorefrontError
from storefront.session_context import SessionContext

from .cart_service import CartService


class CartRefresher:
    """Re-fetches the customer cart on a fixed interval while signed in"""

    def __init__(self, context: SessionContext, cart_service: CartService, interval: float):
        self._context = context
        self._cart_service = cart_service
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the refresh loop on the running event loop"""
        if self.running:
            self._logger.warning("Cart refresh already running")
            return
        self._task = asyncio.get_running_loop().create_task(self._refresh_loop())
        self._logger.info("⏱️ Cart refresh started (every %ss)", self._interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish"""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._logger.info("⏱️ Cart refresh stopped")

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if not self._context.is_authenticated:
                self._logger.info("No customer signed in; cart refresh exiting")
                return
            try:
                cart = await self._cart_service.get_cart()
                self._logger.debug("Cart refreshed: %d lines", len(cart.items))
            except StorefrontError as e:
                self._logger.error("Error during cart refresh: %s", e)
