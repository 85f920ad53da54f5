"""SQLite database operations for tracked products and their price history."""

from __future__ import annotations

import logging
import math
import sqlite3
import uuid
from datetime import datetime, timedelta, UTC
from pathlib import Path

from . import config
from .models import Product

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def utc_timestamp(dt: datetime | None = None) -> str:
    """Format a UTC timestamp the way rows store it (millisecond precision)."""
    dt = dt or datetime.now(UTC)
    return dt.strftime(TIMESTAMP_FORMAT)[:-3]


class PriceDatabase:
    """SQLite database for tracked products with price history."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = Path(db_path or config.DATABASE_PATH)
        self._init_db()

    def _init_db(self):
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA journal_mode = WAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS products (
                    id TEXT PRIMARY KEY,
                    item_id TEXT,
                    name TEXT NOT NULL,
                    image_url TEXT,
                    product_url TEXT,
                    category_name TEXT,
                    current_price INTEGER,
                    min_price INTEGER,
                    max_price INTEGER,
                    avg_price INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS price_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    product_id TEXT NOT NULL,
                    price INTEGER NOT NULL,
                    recorded_at TEXT NOT NULL,
                    FOREIGN KEY (product_id) REFERENCES products(id)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_price_history_product_id
                ON price_history (product_id)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_price_history_recorded_at
                ON price_history (recorded_at)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_updated_at
                ON products (updated_at)
            """)

            # Ensure uuid column exists for older databases
            try:
                conn.execute("ALTER TABLE products ADD COLUMN uuid TEXT")
            except sqlite3.OperationalError:
                pass  # Column already exists

            missing = conn.execute("SELECT id FROM products WHERE uuid IS NULL").fetchall()
            for (product_id,) in missing:
                conn.execute(
                    "UPDATE products SET uuid = ? WHERE id = ?",
                    (str(uuid.uuid4()), product_id),
                )
            if missing:
                logger.info(f"Backfilled uuid for {len(missing)} products")

            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_products_uuid
                ON products (uuid)
            """)

            conn.commit()

    # --- Writes ---

    def _upsert(self, conn: sqlite3.Connection, product: Product, now: str) -> None:
        """Insert or update a product row. The uuid is only ever set on insert."""
        conn.execute(
            """
            INSERT INTO products (
                id, item_id, name, image_url, product_url, category_name,
                current_price, min_price, max_price, avg_price,
                created_at, updated_at, uuid
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                item_id = CASE WHEN excluded.item_id != '' THEN excluded.item_id ELSE products.item_id END,
                name = excluded.name,
                image_url = excluded.image_url,
                product_url = excluded.product_url,
                category_name = CASE
                    WHEN excluded.category_name != '' THEN excluded.category_name
                    ELSE products.category_name
                END,
                current_price = COALESCE(excluded.current_price, products.current_price),
                min_price = MIN(
                    COALESCE(products.min_price, excluded.current_price),
                    COALESCE(excluded.current_price, products.min_price)
                ),
                max_price = MAX(
                    COALESCE(products.max_price, excluded.current_price),
                    COALESCE(excluded.current_price, products.max_price)
                ),
                updated_at = excluded.updated_at
            """,
            (
                product.id,
                product.item_id or "",
                product.name,
                product.image_url,
                product.product_url,
                product.category_name or "",
                product.current_price,
                product.min_price,
                product.max_price,
                product.avg_price,
                now,
                now,
                str(uuid.uuid4()),
            ),
        )

    def upsert_product(self, product: Product) -> None:
        """Insert or update a product without recording history."""
        with sqlite3.connect(self.db_path) as conn:
            self._upsert(conn, product, utc_timestamp())
            conn.commit()

    def record_price(self, product: Product) -> None:
        """Upsert a product, append its price to history and refresh the average."""
        now = utc_timestamp()
        with sqlite3.connect(self.db_path) as conn:
            self._upsert(conn, product, now)
            if product.current_price is not None:
                conn.execute(
                    "INSERT INTO price_history (product_id, price, recorded_at) VALUES (?, ?, ?)",
                    (product.id, product.current_price, now),
                )
                conn.execute(
                    """
                    UPDATE products
                    SET avg_price = (
                        SELECT CAST(ROUND(AVG(price)) AS INTEGER)
                        FROM price_history WHERE product_id = ?
                    )
                    WHERE id = ?
                    """,
                    (product.id, product.id),
                )
            conn.commit()

    def refresh_stats(self, product_id: str) -> dict | None:
        """Record the stored current price again and rewrite min/max/avg from history.

        Returns the refreshed row, or None if the product does not exist.
        """
        now = utc_timestamp()
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT current_price FROM products WHERE id = ?",
                (product_id,),
            ).fetchone()
            if row is None:
                return None

            if row[0] is not None:
                conn.execute(
                    "INSERT INTO price_history (product_id, price, recorded_at) VALUES (?, ?, ?)",
                    (product_id, row[0], now),
                )
            conn.execute(
                """
                UPDATE products
                SET min_price = (SELECT MIN(price) FROM price_history WHERE product_id = :id),
                    max_price = (SELECT MAX(price) FROM price_history WHERE product_id = :id),
                    avg_price = (
                        SELECT CAST(ROUND(AVG(price)) AS INTEGER)
                        FROM price_history WHERE product_id = :id
                    ),
                    updated_at = :now
                WHERE id = :id
                """,
                {"id": product_id, "now": now},
            )
            conn.commit()

        return self.find_by_id(product_id)

    def touch(self, product_id: str) -> None:
        """Bump updated_at so the product moves to the back of the refresh order."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "UPDATE products SET updated_at = ? WHERE id = ?",
                (utc_timestamp(), product_id),
            )
            conn.commit()

    # --- Reads ---

    def find_by_id(self, product_id: str) -> dict | None:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM products WHERE id = ?",
                (product_id,),
            ).fetchone()
            return dict(row) if row else None

    def find_by_uuid(self, product_uuid: str) -> dict | None:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM products WHERE uuid = ?",
                (product_uuid,),
            ).fetchone()
            return dict(row) if row else None

    def find_by_id_or_uuid(self, id_or_uuid: str) -> dict | None:
        """Look a product up by public uuid first, then by internal id."""
        return self.find_by_uuid(id_or_uuid) or self.find_by_id(id_or_uuid)

    def find_all(self, limit: int = 20, offset: int = 0) -> list[dict]:
        """Get products ordered by most recently updated."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                """
                SELECT * FROM products
                ORDER BY updated_at DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            )
            return [dict(row) for row in cursor.fetchall()]

    def find_by_discount_rate(self, limit: int = 20) -> list[dict]:
        """Get discounted products ranked by how far they sit below their max price."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                """
                SELECT *,
                    CASE WHEN max_price > 0
                        THEN ROUND((1.0 - (current_price * 1.0 / max_price)) * 100, 1)
                        ELSE 0
                    END AS discount_rate
                FROM products
                WHERE max_price > 0 AND current_price < max_price
                ORDER BY discount_rate DESC
                LIMIT ?
                """,
                (limit,),
            )
            return [dict(row) for row in cursor.fetchall()]

    def find_oldest_one(self) -> dict | None:
        """Get the product that has gone longest without an update."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM products ORDER BY updated_at ASC, rowid ASC LIMIT 1"
            ).fetchone()
            return dict(row) if row else None

    def count(self) -> int:
        with sqlite3.connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]

    # --- Price History ---

    def get_price_history(self, product_id: str, days: int = 30) -> list[dict]:
        """Get price history entries for a product within the last `days` days, oldest first."""
        cutoff = utc_timestamp(datetime.now(UTC) - timedelta(days=days))
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                """
                SELECT price, recorded_at
                FROM price_history
                WHERE product_id = ? AND recorded_at >= ?
                ORDER BY recorded_at ASC, id ASC
                """,
                (product_id, cutoff),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_price_stats(self, product_id: str) -> dict:
        """Get min/max/avg/count over a product's whole price history."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                """
                SELECT
                    MIN(price) AS min_price,
                    MAX(price) AS max_price,
                    CAST(ROUND(AVG(price)) AS INTEGER) AS avg_price,
                    COUNT(*) AS count
                FROM price_history
                WHERE product_id = ?
                """,
                (product_id,),
            ).fetchone()
            return dict(row)

    # --- Admin ---

    def get_admin_stats(self) -> dict:
        """Get statistics for the admin dashboard."""
        recent_cutoff = utc_timestamp(datetime.now(UTC) - timedelta(days=1))

        with sqlite3.connect(self.db_path) as conn:
            total_products = conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]

            # updated_at is stored in UTC; 'localtime' shifts it to the server's day
            today_updated = conn.execute(
                """
                SELECT COUNT(*) FROM products
                WHERE date(updated_at, 'localtime') = date('now', 'localtime')
                """
            ).fetchone()[0]

            recent_price_changes = conn.execute(
                "SELECT COUNT(*) FROM price_history WHERE recorded_at >= ?",
                (recent_cutoff,),
            ).fetchone()[0]

        try:
            db_size = f"{self.db_path.stat().st_size / 1024 / 1024:.2f} MB"
        except OSError as e:
            logger.warning(f"Failed to get DB file size: {e}")
            db_size = "Unknown"

        return {
            "totalProducts": total_products,
            "todayUpdated": today_updated,
            "recentPriceChanges": recent_price_changes,
            "dbSize": db_size,
            "serverTime": datetime.now().astimezone().isoformat(timespec="seconds"),
        }

    def search_admin_products(self, page: int = 1, limit: int = 50, q: str | None = None) -> dict:
        """Paged product listing with history counts, optionally filtered by name/category."""
        offset = (page - 1) * limit
        where = ""
        params: list = []
        if q:
            where = " WHERE p.name LIKE ? OR p.category_name LIKE ?"
            params = [f"%{q}%", f"%{q}%"]

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                f"""
                SELECT p.*,
                    (SELECT COUNT(*) FROM price_history ph WHERE ph.product_id = p.id) AS history_count
                FROM products p{where}
                ORDER BY p.updated_at DESC
                LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            )
            products = [dict(row) for row in cursor.fetchall()]
            total = conn.execute(
                f"SELECT COUNT(*) FROM products p{where}",
                params,
            ).fetchone()[0]

        return {
            "data": products,
            "total": total,
            "page": page,
            "totalPages": math.ceil(total / limit) if limit else 0,
        }
