import unittest
from dataclasses import asdict

from cooshop.models import Product


class TestProduct(unittest.TestCase):
    def test_fresh_product_bounds_default_to_current_price(self):
        product = Product(id="1", name="Kettle", current_price=3000)
        self.assertEqual((product.min_price, product.max_price, product.avg_price), (3000, 3000, 3000))

    def test_explicit_bounds_are_kept(self):
        product = Product(id="1", name="Kettle", current_price=3000, min_price=2500, max_price=4000)
        self.assertEqual((product.min_price, product.max_price), (2500, 4000))

    def test_is_a_plain_record(self):
        product = Product(id="1", name="Kettle", current_price=None)
        self.assertEqual(set(asdict(product)), {
            "id", "name", "current_price", "item_id", "image_url", "product_url",
            "category_name", "min_price", "max_price", "avg_price",
        })

