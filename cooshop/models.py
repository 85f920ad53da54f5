"""Data models for tracked products."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass
class Product:
    """A product as returned by the affiliate API, normalized for storage."""

    id: str
    name: str
    current_price: int | None
    item_id: str = ""
    image_url: str | None = None
    product_url: str | None = None
    category_name: str = ""
    min_price: int | None = None
    max_price: int | None = None
    avg_price: int | None = None

    def __post_init__(self):
        # A freshly fetched product has seen exactly one price
        if self.min_price is None:
            self.min_price = self.current_price
        if self.max_price is None:
            self.max_price = self.current_price
        if self.avg_price is None:
            self.avg_price = self.current_price


def discount_rate(current_price: int | float | None, max_price: int | float | None) -> int:
    """Percent below the highest seen price, rounded half-up to a whole number."""
    if not max_price or max_price <= 0 or current_price is None:
        return 0
    return math.floor((1 - current_price / max_price) * 100 + 0.5)
