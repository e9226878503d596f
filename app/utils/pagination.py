import math
from typing import Any, List, Optional
from fastapi import HTTPException, Query, status
from app.config import settings


def _coerce_positive_int(value: Optional[str], default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


class PageParams:
    """
    Query-string pagination. Values arrive as raw strings so that junk like
    ?page=abc falls back to the defaults instead of failing validation.
    """

    def __init__(
        self,
        page: Optional[str] = Query(None, description="Page number, starting at 1"),
        limit: Optional[str] = Query(None, description="Items per page"),
    ):
        self.page = _coerce_positive_int(page, 1)
        self.limit = min(
            _coerce_positive_int(limit, settings.DEFAULT_PAGE_LIMIT),
            settings.MAX_PAGE_LIMIT,
        )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def page_metadata(items: List[Any], total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if total else 0
    has_next = page < total_pages
    has_prev = page > 1
    return {
        "items": items,
        "page": page,
        "limit": limit,
        "totalItems": total,
        "totalPages": total_pages,
        "hasNextPage": has_next,
        "hasPrevPage": has_prev,
        "nextPage": page + 1 if has_next else None,
        "prevPage": page - 1 if has_prev else None,
    }


async def paginate(collection, pipeline: List[dict], params: PageParams) -> dict:
    """
    Run a built pipeline and return one page of it with totals.

    Items and count come from a single $facet so they describe the same
    snapshot of the collection.
    """
    faceted = pipeline + [{
        "$facet": {
            "items": [{"$skip": params.skip}, {"$limit": params.limit}],
            "total": [{"$count": "count"}],
        }
    }]
    result = await collection.aggregate(faceted).to_list(length=1)
    facet = result[0] if result else {"items": [], "total": []}
    # $count emits nothing at all for an empty input
    total = facet["total"][0]["count"] if facet["total"] else 0
    return page_metadata(facet["items"], total, params.page, params.limit)


async def paginate_or_404(collection, pipeline: List[dict], params: PageParams, not_found: str) -> dict:
    """List endpoints answer 404 rather than an empty page when nothing matches at all"""
    page = await paginate(collection, pipeline, params)
    if page["totalItems"] == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=not_found)
    return page
