import tempfile
import unittest
from pathlib import Path

from cooshop.coupang import normalize_product
from cooshop.db import PriceDatabase
from cooshop.models import discount_rate
from cooshop.price import PriceService, ProductNotFoundError

from .helpers import FakeCoupangClient, raw_product


class TestDiscountRate(unittest.TestCase):
    def test_percent_below_max(self):
        self.assertEqual(discount_rate(7500, 10000), 25)
        self.assertEqual(discount_rate(10000, 10000), 0)

    def test_rounds_half_up(self):
        self.assertEqual(discount_rate(8750, 10000), 13)  # 12.5
        self.assertEqual(discount_rate(20000, 30000), 33)

    def test_zero_or_missing_max(self):
        self.assertEqual(discount_rate(100, 0), 0)
        self.assertEqual(discount_rate(100, None), 0)
        self.assertEqual(discount_rate(None, 100), 0)


class TestPriceService(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db = PriceDatabase(db_path=Path(self._tmp.name) / "test.db")
        self.client = FakeCoupangClient()
        self.service = PriceService(self.db, self.client)

    def tearDown(self):
        self._tmp.cleanup()

    async def test_search_and_save_exposes_uuid_as_id(self):
        self.client.search_results = [raw_product(1, 1000), raw_product(2, 2000)]

        saved = await self.service.search_and_save_products("kettle")

        self.assertEqual(self.client.searches, ["kettle"])
        self.assertEqual(len(saved), 2)
        for item, internal_id in zip(saved, ("1", "2")):
            row = self.db.find_by_id(internal_id)
            self.assertEqual(item["id"], row["uuid"])
            self.assertNotEqual(item["id"], internal_id)
        self.assertEqual(self.db.get_price_stats("1")["count"], 1)

    async def test_goldbox_products_are_stored(self):
        self.client.goldbox = [raw_product(9, 500)]

        saved = await self.service.save_goldbox_products()

        self.assertEqual(len(saved), 1)
        self.assertEqual(self.db.find_by_id("9")["current_price"], 500)

    async def test_product_with_history_by_uuid_and_internal_id(self):
        self.db.record_price(normalize_product(raw_product(5, 20000)))
        self.db.record_price(normalize_product(raw_product(5, 15000)))
        product_uuid = self.db.find_by_id("5")["uuid"]

        detail = self.service.get_product_with_history(product_uuid)

        self.assertEqual(detail["id"], product_uuid)
        self.assertEqual([h["price"] for h in detail["history"]], [20000, 15000])
        self.assertIn("date", detail["history"][0])
        self.assertEqual(detail["stats"]["max_price"], 20000)
        self.assertEqual(detail["stats"]["min_price"], 15000)
        self.assertEqual(detail["stats"]["count"], 2)
        self.assertEqual(detail["stats"]["discount_rate"], 25)

        legacy = self.service.get_product_with_history("5")
        self.assertEqual(legacy["id"], product_uuid)

    def test_product_with_history_missing(self):
        self.assertIsNone(self.service.get_product_with_history("nope"))

    def test_top_discounts_use_public_ids(self):
        self.db.record_price(normalize_product(raw_product(1, 10000)))
        self.db.record_price(normalize_product(raw_product(1, 5000)))

        top = self.service.get_top_discount_products()

        self.assertEqual(len(top), 1)
        self.assertEqual(top[0]["id"], self.db.find_by_id("1")["uuid"])
        self.assertEqual(top[0]["discount_rate"], 50.0)

    async def test_update_price_by_name_truncates_and_matches_id(self):
        long_name = "Extra long product name that goes well past forty characters"
        self.db.record_price(normalize_product(raw_product(3, 9000, name=long_name)))
        self.client.search_results = [
            raw_product(99, 1000, name="Other"),
            raw_product(3, 8000, name=long_name),
        ]

        updated = await self.service.update_price_by_name(self.db.find_by_id("3"))

        self.assertEqual(self.client.searches, [long_name[:40]])
        self.assertEqual(len(self.client.searches[0]), 40)
        self.assertEqual(updated.id, "3")
        self.assertEqual(updated.current_price, 8000)

        row = self.db.find_by_id("3")
        self.assertEqual((row["current_price"], row["min_price"], row["max_price"]), (8000, 8000, 9000))
        self.assertIsNone(self.db.find_by_id("99"))

    async def test_update_price_by_name_miss_returns_none(self):
        self.db.record_price(normalize_product(raw_product(3, 9000)))
        self.client.search_results = [raw_product(4, 100)]

        self.assertIsNone(await self.service.update_price_by_name(self.db.find_by_id("3")))
        self.assertEqual(self.db.get_price_stats("3")["count"], 1)

    def test_update_product_price(self):
        self.db.record_price(normalize_product(raw_product(3, 9000)))

        refreshed = self.service.update_product_price("3")

        self.assertEqual(refreshed["avg_price"], 9000)
        self.assertEqual(self.db.get_price_stats("3")["count"], 2)
        with self.assertRaises(ProductNotFoundError):
            self.service.update_product_price("missing")
