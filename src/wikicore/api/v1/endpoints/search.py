# src/wikicore/api/v1/endpoints/search.py
"""Search endpoint."""

from typing import Any

from fastapi import APIRouter, Query

from wikicore.api.v1.dependencies import ContextDep, SessionDep
from wikicore.schemas.search import SearchHitResponse, SearchResponse
from wikicore.services.search import SearchEngine, SearchFilters

router = APIRouter(prefix="/search", tags=["search"])


@router.get("", response_model=SearchResponse)
def search_posts(
    db: SessionDep,
    context: ContextDep,
    q: str | None = Query(None, description="Keyword query; containing 'or' switches to OR semantics"),
    page: int = Query(1, ge=1),
    badge: str | None = Query(None, description="Comma separated badge ids or names"),
    tag: str | None = Query(None, description="Comma separated tag ids or names"),
    type: str | None = Query(None, description="Comma separated type ids or names"),
    format: str | None = Query(None, description="Comma separated format ids or names"),
    hidden: bool = Query(False),
    deleted: bool = Query(False),
    sort: str | None = Query(None, description="updatednew, titleaz, mostviews, ..."),
    title_only: bool = Query(False, description="Match the query against titles only"),
) -> SearchResponse:
    """Return one page of posts the caller may read."""
    params: dict[str, Any] = {
        "badge": badge,
        "tag": tag,
        "type": type,
        "format": format,
        "sort": sort,
    }
    if hidden:
        params["hidden"] = True
    if deleted:
        params["deleted"] = True

    engine = SearchEngine(db, context)
    result = engine.search(q, SearchFilters.from_params(params), page, title_only=title_only)
    hits = [
        SearchHitResponse(
            id=hit.post.id,
            uuid=hit.post.uuid,
            title=hit.post.title,
            slug=hit.post.slug,
            teaser=hit.teaser,
            weight=hit.weight,
            clicks=hit.post.clicks,
            created_by=hit.post.created_by,
            updated_at=hit.post.updated_at,
            badges=hit.badges,
            tags=hit.tags,
            permissions=hit.permissions,
        )
        for hit in result.hits
    ]
    return SearchResponse(
        hits=hits,
        total=result.total,
        page=result.page,
        pages=result.pages,
        page_size=result.page_size,
        next_page=result.next_page,
        previous_page=result.previous_page,
    )
