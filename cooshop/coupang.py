"""Signed client for the Coupang Partners affiliate API."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from datetime import datetime, UTC
from typing import Any
from urllib.parse import urlencode

import httpx

from . import config
from .models import Product

logger = logging.getLogger(__name__)

API_PREFIX = "/v2/providers/affiliate_open_api/apis/openapi/v1"
SEARCH_PATH = f"{API_PREFIX}/products/search"
BEST_CATEGORIES_PATH = f"{API_PREFIX}/products/bestcategories"
GOLDBOX_PATH = f"{API_PREFIX}/products/goldbox"

SEARCH_LIMIT_MAX = 10
BEST_LIMIT_MAX = 100


class CoupangError(Exception):
    """Base error for affiliate API failures."""


class CoupangConfigError(CoupangError):
    """Raised when API credentials are missing."""


class CoupangApiError(CoupangError):
    """Raised when the API answers with an error or an unreadable body."""


def signed_date(now: datetime | None = None) -> str:
    """Format a timestamp as yyMMdd'T'HHmmss'Z' in UTC."""
    now = now or datetime.now(UTC)
    if now.tzinfo is not None:
        now = now.astimezone(UTC)
    return now.strftime("%y%m%dT%H%M%SZ")


def generate_authorization(
    method: str,
    uri: str,
    access_key: str,
    secret_key: str,
    now: datetime | None = None,
) -> str:
    """Build the CEA Authorization header for a request.

    The signed message is ``signed_date + method + path + query`` where the
    query string is taken verbatim from ``uri`` without its leading ``?``.
    """
    datetime_str = signed_date(now)
    path, _, query = uri.partition("?")
    message = datetime_str + method + path + query

    signature = hmac.new(
        secret_key.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    logger.debug(f"Signed {method} {path} at {datetime_str}")

    return (
        f"CEA algorithm=HmacSHA256, access-key={access_key}, "
        f"signed-date={datetime_str}, signature={signature}"
    )


def normalize_product(raw: dict[str, Any]) -> Product:
    """Map an API product payload onto a storable Product."""
    price = raw.get("productPrice")
    return Product(
        id=str(raw["productId"]),
        item_id=str(raw.get("itemId") or ""),
        name=raw.get("productName") or "",
        image_url=raw.get("productImage"),
        product_url=raw.get("productUrl"),
        category_name=raw.get("categoryName") or "",
        current_price=int(price) if price is not None else None,
    )


class CoupangClient:
    """Thin async client that signs every call with HMAC-SHA256."""

    def __init__(
        self,
        access_key: str | None = None,
        secret_key: str | None = None,
        domain: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.access_key = access_key if access_key is not None else config.COUPANG_ACCESS_KEY
        self.secret_key = secret_key if secret_key is not None else config.COUPANG_SECRET_KEY
        self.domain = (domain or config.COUPANG_DOMAIN).rstrip("/")
        self._http_client = http_client

    async def call(self, method: str, path: str, params: dict[str, Any] | None = None) -> dict:
        """Send a signed request and return the decoded JSON body."""
        if not self.access_key or not self.secret_key:
            raise CoupangConfigError("COUPANG_ACCESS_KEY and COUPANG_SECRET_KEY must be set")

        query = urlencode(params or {})
        uri = f"{path}?{query}" if query else path
        url = f"{self.domain}{uri}"

        headers = {
            "Authorization": generate_authorization(method, uri, self.access_key, self.secret_key),
            "Content-Type": "application/json;charset=UTF-8",
        }

        logger.info(f"Coupang API call: {method} {path}")
        if self._http_client is not None:
            resp = await self._http_client.request(method, url, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(30.0)) as client:
                resp = await client.request(method, url, headers=headers)

        text = resp.text
        logger.debug(f"Coupang API response {resp.status_code}: {text[:500]}")

        if resp.is_error:
            raise CoupangApiError(f"Coupang API Error: {resp.status_code} - {text}")

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            raise CoupangApiError(f"Invalid JSON: {text[:500]}") from None

    @staticmethod
    def _check(result: dict, action: str) -> None:
        if str(result.get("rCode")) != "0":
            raise CoupangApiError(f"{action} failed: {result.get('rMessage')}")

    async def search_products(self, keyword: str, limit: int = 10) -> list[dict]:
        """Search products by keyword (the API returns at most 10)."""
        result = await self.call(
            "GET",
            SEARCH_PATH,
            {"keyword": keyword, "limit": min(limit, SEARCH_LIMIT_MAX)},
        )
        self._check(result, "Search")
        return (result.get("data") or {}).get("productData") or []

    async def get_best_products(self, category_id: int = 0, limit: int = 20) -> list[dict]:
        """Best sellers for a category."""
        result = await self.call(
            "GET",
            BEST_CATEGORIES_PATH,
            {"categoryId": category_id, "limit": min(limit, BEST_LIMIT_MAX)},
        )
        self._check(result, "Best products")
        return result.get("data") or []

    async def get_goldbox_products(self) -> list[dict]:
        """Today's Goldbox (special offer) products."""
        result = await self.call("GET", GOLDBOX_PATH, {})
        self._check(result, "Goldbox")
        return result.get("data") or []
