import tempfile
import unittest
from pathlib import Path

from cooshop.coupang import CoupangApiError, normalize_product
from cooshop.db import PriceDatabase
from cooshop.init_data import initialize_data
from cooshop.price import PriceService

from .helpers import FakeCoupangClient, raw_product


class TestInitializeData(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db = PriceDatabase(db_path=Path(self._tmp.name) / "test.db")

    def tearDown(self):
        self._tmp.cleanup()

    async def test_seeds_each_category_and_skips_failures(self):
        client = FakeCoupangClient(best={
            1: [raw_product(1, 100), raw_product(2, 200)],
            2: CoupangApiError("Best products failed: quota"),
            3: [raw_product(3, 300)],
        })
        service = PriceService(self.db, client)

        with self.assertLogs("cooshop.init_data", level="INFO") as logs:
            saved = await initialize_data(service, categories=[(1, "A"), (2, "B"), (3, "C")], delay=0)

        self.assertEqual(saved, 3)
        self.assertEqual(client.best_calls, [1, 2, 3])
        self.assertEqual(self.db.count(), 3)
        self.assertEqual(self.db.get_price_stats("1")["count"], 1)
        self.assertTrue(any("Failed to fetch category B" in line for line in logs.output))

    async def test_skips_when_database_already_populated(self):
        for i in range(11):
            self.db.record_price(normalize_product(raw_product(i + 1, 1000)))
        client = FakeCoupangClient(best={1: [raw_product(100, 1)]})

        saved = await initialize_data(PriceService(self.db, client), categories=[(1, "A")], delay=0)

        self.assertEqual(saved, 0)
        self.assertEqual(client.best_calls, [])

    async def test_ten_products_still_seed(self):
        for i in range(10):
            self.db.record_price(normalize_product(raw_product(i + 1, 1000)))
        client = FakeCoupangClient(best={1: [raw_product(100, 1)]})

        saved = await initialize_data(PriceService(self.db, client), categories=[(1, "A")], delay=0)

        self.assertEqual(saved, 1)
        self.assertEqual(self.db.count(), 11)
