# src/wikicore/schemas/search.py
"""Search result schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class SearchHitResponse(BaseModel):
    id: int
    uuid: str
    title: str
    slug: str
    teaser: str | None = None
    weight: int | None = Field(None, description="Sum of matched posting weights")
    clicks: int
    created_by: int
    updated_at: datetime
    badges: list[dict[str, Any]] = Field(default_factory=list)
    tags: list[dict[str, Any]] = Field(default_factory=list)
    permissions: dict[str, list[str]] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    """One page of search results plus paging controls."""

    hits: list[SearchHitResponse]
    total: int
    page: int
    pages: int
    page_size: int
    next_page: int | None = None
    previous_page: int | None = None
