"""Seed an empty database with best sellers from the main categories."""

from __future__ import annotations

import asyncio
import logging

from .coupang import normalize_product
from .price import PriceService

logger = logging.getLogger(__name__)

CATEGORIES = [
    (1001, "Women's fashion"),
    (1010, "Beauty"),
    (1020, "Food"),
    (1021, "Kitchen"),
    (1024, "Household"),
    (1025, "Home interior"),
    (1026, "Digital appliances"),
    (1029, "Pet supplies"),
]

# Skip seeding once the table holds more than this many products
SEED_THRESHOLD = 10
PRODUCTS_PER_CATEGORY = 20
CATEGORY_DELAY_SECONDS = 2.0


async def initialize_data(
    service: PriceService,
    categories: list[tuple[int, str]] | None = None,
    delay: float = CATEGORY_DELAY_SECONDS,
) -> int:
    """Load best-seller products per category into an (almost) empty database.

    Returns the number of products saved. A failing category is logged and
    skipped; nothing is raised.
    """
    total_saved = 0
    try:
        count = service.db.count()
        if count > SEED_THRESHOLD:
            logger.info(f"Data already exists ({count} products). Skipping initialization.")
            return 0

        logger.info("Starting data initialization...")

        for category_id, category_name in categories or CATEGORIES:
            logger.info(f"Fetching best products for: {category_name} ({category_id})")
            try:
                products = await service.client.get_best_products(category_id, PRODUCTS_PER_CATEGORY)

                saved = 0
                for raw in products:
                    service.db.record_price(normalize_product(raw))
                    saved += 1
                total_saved += saved
                logger.info(f"Saved {saved} products for {category_name}")

                # Stay under the API rate limit
                await asyncio.sleep(delay)

            except Exception as e:
                logger.error(f"Failed to fetch category {category_name}: {e}")

        logger.info("Data initialization completed.")

    except Exception as e:
        logger.error(f"Fatal error during initialization: {e}")

    return total_saved
