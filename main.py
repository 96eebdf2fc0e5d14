#!/usr/bin/env python3
"""
Entry point for a storefront shopper session

Restores the session from storage, optionally signs in with
STOREFRONT_LOGIN_EMAIL / STOREFRONT_LOGIN_PASSWORD and logs a cart summary.
"""

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from storefront.config import get_config
from storefront.container import Container
from storefront.infrastructure.logging.logging_config import (
    LoggingConfigOptions,
    get_performance_metrics,
    setup_logging,
)
from storefront.infrastructure.utilities.exceptions import StorefrontError


async def run_session() -> None:
    """Open a session, report the cart and close it again"""
    logger = logging.getLogger(__name__)
    config = get_config()
    container = Container(config)

    try:
        session = await container.init()
        logger.info("🚀 Session ready (authenticated: %s)", session.is_authenticated())

        email = os.getenv("STOREFRONT_LOGIN_EMAIL")
        password = os.getenv("STOREFRONT_LOGIN_PASSWORD")
        if email and password and not session.is_authenticated():
            result = await session.login(email, password)
            logger.info("👤 Signed in as %s", result.profile.full_name)
            if result.merge_failures:
                logger.warning("Some guest items were not carried over: %s", ", ".join(result.merge_failures))

        cart = session.current_cart()
        logger.info(
            "🛒 Cart %s: %d lines, %d items, subtotal %s %s",
            cart.id or "-",
            len(cart.items),
            session.item_count(),
            session.subtotal(),
            config.currency,
        )
        logger.info("📈 HTTP metrics: %s", get_performance_metrics())
    finally:
        await container.dispose()


def main():
    """Main entry point"""
    config = get_config()
    setup_logging(LoggingConfigOptions(log_level=config.log_level, log_dir=config.log_dir))
    logger = logging.getLogger(__name__)

    try:
        asyncio.run(run_session())
    except StorefrontError as e:
        logger.error("💥 Session failed: %s (%s)", e, e.error_code)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
