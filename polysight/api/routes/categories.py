from fastapi import APIRouter

from ...core.categories import sports_subcategories, top_categories
from ...errors import FETCH_FAILED, error_response
from ...polymarket.client import UpstreamError

router = APIRouter()


@router.get("/categories")
async def categories():
    try:
        counted = await top_categories()
    except UpstreamError as exc:
        return error_response(FETCH_FAILED, "Failed to fetch categories", 503, {"source": exc.source})
    return {
        "categories": [c.model_dump() for c in counted],
        "meta": {"total": len(counted)},
    }


@router.get("/sports-subcategories")
async def subcategories():
    try:
        sports = await sports_subcategories()
    except UpstreamError as exc:
        return error_response(FETCH_FAILED, "Failed to fetch sports tags", 503, {"source": exc.source})
    return {
        "subcategories": [s.model_dump(by_alias=True) for s in sports],
        "meta": {
            "total": len(sports),
            "matched": sum(1 for s in sports if s.tag_id is not None),
        },
    }
