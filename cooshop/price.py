"""Price tracking service: ties the affiliate client to the database."""

from __future__ import annotations

import logging

from .coupang import CoupangClient, normalize_product
from .db import PriceDatabase
from .models import Product, discount_rate

logger = logging.getLogger(__name__)

# The search API rejects keywords longer than this
SEARCH_KEYWORD_MAX_LENGTH = 40


class ProductNotFoundError(LookupError):
    """Raised when a product id is not in the database."""


def to_public(row: dict) -> dict:
    """Expose a product row under its uuid instead of the internal id."""
    return {**row, "id": row.get("uuid")}


class PriceService:
    """Search, store and refresh product prices."""

    def __init__(self, db: PriceDatabase, client: CoupangClient):
        self.db = db
        self.client = client

    async def _save_all(self, raw_products: list[dict]) -> list[dict]:
        saved: list[dict] = []
        for raw in raw_products:
            product = normalize_product(raw)
            self.db.record_price(product)
            if row := self.db.find_by_id(product.id):
                saved.append(to_public(row))
        return saved

    async def search_and_save_products(self, keyword: str) -> list[dict]:
        """Search the affiliate API and store every hit with a history entry."""
        raw_products = await self.client.search_products(keyword)
        return await self._save_all(raw_products)

    async def save_goldbox_products(self) -> list[dict]:
        """Fetch today's Goldbox deals and store them."""
        raw_products = await self.client.get_goldbox_products()
        return await self._save_all(raw_products)

    def get_product_with_history(self, id_or_uuid: str, days: int = 30) -> dict | None:
        """Product detail with its price history and history-based stats."""
        product = self.db.find_by_id_or_uuid(id_or_uuid)
        if not product:
            return None

        internal_id = product["id"]
        history = self.db.get_price_history(internal_id, days)
        stats = self.db.get_price_stats(internal_id)

        return {
            **to_public(product),
            "history": [{"price": h["price"], "date": h["recorded_at"]} for h in history],
            "stats": {
                **stats,
                "discount_rate": discount_rate(product["current_price"], stats.get("max_price")),
            },
        }

    def get_top_discount_products(self, limit: int = 20) -> list[dict]:
        return [to_public(row) for row in self.db.find_by_discount_rate(limit)]

    def get_recent_products(self, limit: int = 20, offset: int = 0) -> list[dict]:
        return [to_public(row) for row in self.db.find_all(limit, offset)]

    def update_product_price(self, product_id: str) -> dict:
        """Re-record the stored price and recompute min/max/avg from history."""
        product = self.db.refresh_stats(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product not found: {product_id}")
        return product

    async def update_price_by_name(self, product: dict) -> Product | None:
        """Refresh one product by searching for its name and matching the product id.

        Returns the refreshed product, or None when the search did not return it.
        """
        keyword = product["name"][:SEARCH_KEYWORD_MAX_LENGTH]
        results = await self.client.search_products(keyword)

        target = next(
            (item for item in results if str(item.get("productId")) == product["id"]),
            None,
        )
        if target is None:
            return None

        normalized = normalize_product(target)
        self.db.record_price(normalized)
        return normalized
