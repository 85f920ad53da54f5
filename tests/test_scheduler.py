import asyncio
import sqlite3
import tempfile
import unittest
from pathlib import Path

from cooshop.coupang import CoupangApiError, normalize_product
from cooshop.db import PriceDatabase
from cooshop.price import PriceService
from cooshop.scheduler import PriceUpdateScheduler

from .helpers import FakeCoupangClient, raw_product


class TestPriceUpdateScheduler(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "test.db"
        self.db = PriceDatabase(db_path=self.db_path)
        self.client = FakeCoupangClient()
        self.scheduler = PriceUpdateScheduler(PriceService(self.db, self.client), delay=0.01)

    def tearDown(self):
        self._tmp.cleanup()

    def _age(self, product_id: str, updated_at: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("UPDATE products SET updated_at = ? WHERE id = ?", (updated_at, product_id))
            conn.commit()

    async def test_idle_when_no_products(self):
        self.assertEqual(await self.scheduler.run_once(), "idle")
        self.assertEqual(self.client.searches, [])

    async def test_hit_records_new_price_for_oldest_product(self):
        self.db.record_price(normalize_product(raw_product(1, 5000, name="Fresh")))
        self.db.record_price(normalize_product(raw_product(2, 7000, name="Stale")))
        self._age("2", "2000-01-01 00:00:00.000")
        self.client.search_results = [raw_product(2, 6500, name="Stale")]

        self.assertEqual(await self.scheduler.run_once(), "updated")

        self.assertEqual(self.client.searches, ["Stale"])
        row = self.db.find_by_id("2")
        self.assertEqual((row["current_price"], row["min_price"], row["max_price"]), (6500, 6500, 7000))
        self.assertEqual(self.db.get_price_stats("2")["count"], 2)

    async def test_miss_touches_product_so_the_next_one_is_picked(self):
        self.db.record_price(normalize_product(raw_product(1, 5000, name="First")))
        self.db.record_price(normalize_product(raw_product(2, 7000, name="Second")))
        self._age("1", "2000-01-01 00:00:00.000")
        self._age("2", "2000-01-02 00:00:00.000")

        self.assertEqual(await self.scheduler.run_once(), "missed")
        self.assertGreater(self.db.find_by_id("1")["updated_at"], "2001")
        self.assertEqual(self.db.get_price_stats("1")["count"], 1)

        await self.scheduler.run_once()
        self.assertEqual(self.client.searches, ["First", "Second"])

    async def test_errors_are_logged_not_raised(self):
        self.db.record_price(normalize_product(raw_product(1, 5000)))
        self.client.error = CoupangApiError("Coupang API Error: 500 - boom")

        with self.assertLogs("cooshop.scheduler", level="ERROR") as logs:
            self.assertEqual(await self.scheduler.run_once(), "error")

        self.assertIn("boom", logs.output[0])

    async def test_loop_keeps_running_after_errors(self):
        self.db.record_price(normalize_product(raw_product(1, 5000)))
        self.client.error = CoupangApiError("down")

        with self.assertLogs("cooshop.scheduler", level="INFO"):
            self.scheduler.start()
            self.scheduler.start()  # second start is a no-op
            await asyncio.sleep(0.1)
            self.assertTrue(self.scheduler.is_running)
            self.scheduler.stop()

        self.assertFalse(self.scheduler.is_running)
        self.assertGreaterEqual(len(self.client.searches), 2)

    async def test_second_start_warns_and_keeps_one_task(self):
        self.scheduler.start()
        task = self.scheduler._task
        try:
            with self.assertLogs("cooshop.scheduler", level="WARNING") as logs:
                self.scheduler.start()
            self.assertIs(self.scheduler._task, task)
            self.assertIn("already started", logs.output[0])
            self.assertTrue(self.scheduler.get_status()["running"])
        finally:
            self.scheduler.stop()

        self.assertFalse(self.scheduler.is_running)

    def test_status(self):
        status = self.scheduler.get_status()
        self.assertEqual(status, {"running": False, "delay": 0.01, "products": 0})
