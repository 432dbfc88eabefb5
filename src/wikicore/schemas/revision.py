# src/wikicore/schemas/revision.py
"""Schemas for autosave, commit and diff requests."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ContentUpdate(BaseModel):
    """Body of autosave and commit requests."""

    content: str = Field(..., description="Full plaintext content of the post")


class DraftResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: int
    revision: int
    created_by: int
    created_at: datetime


class CommitResponse(DraftResponse):
    """A committed revision; ``revision`` is its sequence number."""


class DiffSegmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    op: Literal["equal", "insert", "delete"]
    text: str


class DraftDiffResponse(BaseModel):
    """One editor's draft compared with the committed content."""

    revision_id: int
    editor_id: int
    saved_at: datetime
    degraded: bool
    segments: list[DiffSegmentResponse]
    html: str
