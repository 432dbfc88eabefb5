# src/wikicore/schemas/post.py
"""Post-related Pydantic schemas."""

from pydantic import BaseModel, Field


class PermissionSummaryResponse(BaseModel):
    """Per-role read/write markers for one post."""

    post_id: int
    shared: bool
    roles: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Role name mapped to its markers, e.g. {'Editors': ['R', 'W']}",
    )


class ClickResponse(BaseModel):
    post_id: int
    clicks: int
