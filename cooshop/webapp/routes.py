"""Public product API routes."""

import logging

from fastapi import APIRouter, HTTPException, Query, Request

from ..price import PriceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products")


def get_service(request: Request) -> PriceService:
    """Get price service instance from app state."""
    return request.app.state.service


def _envelope(data: list[dict]) -> dict:
    return {"success": True, "data": data, "count": len(data)}


@router.get("/search")
async def search_products(
    request: Request,
    q: str | None = None,
    limit: int = Query(20, ge=1, le=100),
):
    """Search the affiliate API and store the results.

    GET /api/products/search?q=keyword&limit=20
    """
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Please enter a search term.")

    try:
        products = await get_service(request).search_and_save_products(q.strip())
    except Exception as e:
        logger.error(f"Search error: {e}")
        raise HTTPException(status_code=500, detail="An error occurred while searching.")

    return _envelope(products[:limit])


@router.get("/top/discounts")
async def top_discounts(request: Request, limit: int = Query(20, ge=1, le=100)):
    """Products currently furthest below their highest recorded price."""
    try:
        products = get_service(request).get_top_discount_products(limit)
    except Exception as e:
        logger.error(f"Top discounts error: {e}")
        raise HTTPException(status_code=500, detail="Failed to load discounted products.")

    return _envelope(products)


@router.get("/goldbox")
async def goldbox(request: Request):
    """Today's Goldbox deals, stored as they are fetched."""
    try:
        products = await get_service(request).save_goldbox_products()
    except Exception as e:
        logger.error(f"Goldbox error: {e}")
        raise HTTPException(status_code=500, detail="Failed to load Goldbox deals.")

    return _envelope(products)


@router.get("/{product_id}")
async def product_detail(
    request: Request,
    product_id: str,
    days: int = Query(30, ge=1, le=3650),
):
    """Product detail with price history.

    GET /api/products/{uuid}?days=30 (internal ids are still accepted)
    """
    try:
        product = get_service(request).get_product_with_history(product_id, days)
    except Exception as e:
        logger.error(f"Product detail error: {e}")
        raise HTTPException(status_code=500, detail="Failed to load product.")

    if not product:
        raise HTTPException(status_code=404, detail="Product not found.")

    return {"success": True, "data": product}


@router.get("")
async def list_products(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Most recently updated products."""
    try:
        products = get_service(request).get_recent_products(limit, offset)
    except Exception as e:
        logger.error(f"Products list error: {e}")
        raise HTTPException(status_code=500, detail="Failed to load products.")

    return _envelope(products)
