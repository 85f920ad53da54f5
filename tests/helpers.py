"""Shared fixtures for the test suite."""


def raw_product(product_id=1001, price=10000, name="Test product", **overrides) -> dict:
    """A product payload shaped like the affiliate API returns it."""
    payload = {
        "productId": product_id,
        "itemId": product_id * 10,
        "productName": name,
        "productPrice": price,
        "productImage": f"https://img.example.com/{product_id}.jpg",
        "productUrl": f"https://link.coupang.com/re/{product_id}",
        "categoryName": "Digital",
    }
    payload.update(overrides)
    return payload


class FakeCoupangClient:
    """In-memory stand-in for CoupangClient that records its calls."""

    def __init__(self, search_results=None, best=None, goldbox=None, error=None):
        self.search_results = search_results or []
        self.best = best or {}
        self.goldbox = goldbox or []
        self.error = error
        self.searches: list[str] = []
        self.best_calls: list[int] = []

    async def search_products(self, keyword, limit=10):
        self.searches.append(keyword)
        if self.error:
            raise self.error
        return list(self.search_results)

    async def get_best_products(self, category_id=0, limit=20):
        self.best_calls.append(category_id)
        result = self.best.get(category_id, [])
        if isinstance(result, Exception):
            raise result
        return list(result)

    async def get_goldbox_products(self):
        if self.error:
            raise self.error
        return list(self.goldbox)
