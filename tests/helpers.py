# tests/helpers.py
"""Shared helpers for building callers and seed data in tests."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from wikicore.core.security import create_access_token
from wikicore.models import Badge, Format, Mode, Permission, Role, Tag, Type, User
from wikicore.services.permissions import Caller, RequestContext


@dataclass
class Seed:
    """Rows every test can rely on."""

    admin: User
    author: User
    editor: User
    reader: User
    outsider: User
    readers_role: Role
    editors_role: Role
    read: Permission
    write: Permission
    comment: Permission
    text_format: Format
    html_format: Format
    doc_type: Type
    page_type: Type
    mode: Mode
    featured: Badge
    howto: Tag


def context_for(user: User, *, admin: bool = False, session: dict[str, Any] | None = None) -> RequestContext:
    """Build a fresh request context for ``user``."""
    return RequestContext(
        caller=Caller(user_id=user.id, is_admin=admin),
        session=session if session is not None else {},
    )


def auth_headers(user: User, *, admin: bool = False) -> dict[str, str]:
    token = create_access_token(user.id, admin=admin)
    return {"Authorization": f"Bearer {token}"}
