"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .post import ClickResponse, PermissionSummaryResponse
from .revision import (
    CommitResponse,
    ContentUpdate,
    DiffSegmentResponse,
    DraftDiffResponse,
    DraftResponse,
)
from .search import SearchHitResponse, SearchResponse

__all__ = [
    "ClickResponse", "PermissionSummaryResponse",
    "CommitResponse", "ContentUpdate", "DiffSegmentResponse", "DraftDiffResponse", "DraftResponse",
    "SearchHitResponse", "SearchResponse",
]
