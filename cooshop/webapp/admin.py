"""Admin API: dashboard stats and product listing."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from .auth import require_admin

logger = logging.getLogger(__name__)

ADMIN_PREFIX = "/api/sys-admin-control"

router = APIRouter(prefix=ADMIN_PREFIX, dependencies=[Depends(require_admin)])


@router.get("/stats")
async def admin_stats(request: Request):
    """Dashboard counters and database size."""
    try:
        return request.app.state.db.get_admin_stats()
    except Exception as e:
        logger.error(f"Admin stats error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch stats")


@router.get("/products")
async def admin_products(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    q: str | None = None,
):
    """Paged product listing with history counts, filterable by name or category."""
    try:
        return request.app.state.db.search_admin_products(page=page, limit=limit, q=q)
    except Exception as e:
        logger.error(f"Admin products error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch products")
