# src/wikicore/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .posts import router as posts_router
from .search import router as search_router

__all__ = ["posts_router", "search_router"]
