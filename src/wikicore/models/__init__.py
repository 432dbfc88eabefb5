# src/wikicore/models/__init__.py
"""SQLAlchemy models for the wiki engine."""

from .auth import Permission, PostPermission, Role, User, UserRole
from .catalog import Badge, Format, Framework, Mode, PostBadge, PostTag, Tag, Type
from .post import NEVER_INDEXED, Post, PostLock, PostRead, Route
from .post_index import PostIndex
from .revision import DRAFT_SEQUENCE, Revision

__all__ = [
    "Badge", "Format", "Framework", "Mode", "PostBadge", "PostTag", "Tag", "Type",
    "DRAFT_SEQUENCE", "Revision",
    "NEVER_INDEXED", "Post", "PostLock", "PostRead", "Route",
    "Permission", "PostPermission", "Role", "User", "UserRole",
    "PostIndex",
]
