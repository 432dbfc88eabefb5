# src/wikicore/services/permissions.py
"""Per-post, per-user permission resolution.

Every read, write and search path asks this module what the caller may do.
Resolved permission sets are memoised on a ``RequestContext`` that lives for a
single request, never on the ``Post`` instance, because posts may outlive the
request in a long-running process.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final

from sqlalchemy import ColumnElement, func, or_, select
from sqlalchemy.orm import Session

from wikicore.core.errors import DeniedError
from wikicore.models import Permission, Post, PostPermission, UserRole
from wikicore.utils.uuids import canonical_uuid

READ: Final[str] = "read"
WRITE: Final[str] = "write"
COMMENT: Final[str] = "comment"

SESSION_UUIDS_KEY: Final[str] = "uuids"


class Wildcard(Enum):
    """Marker for an unrestricted permission set."""

    ALL = "*"


ALL_PERMISSIONS: Final = Wildcard.ALL

PermissionSet = frozenset[str] | Wildcard


@dataclass(frozen=True)
class Caller:
    """Already-authenticated identity on whose behalf an operation runs."""

    user_id: int
    is_admin: bool = False
    is_authenticated: bool = True


@dataclass
class RequestContext:
    """State scoped to one request or operation.

    Attributes:
        caller: Identity of the requester.
        session: The caller's HTTP session store; validated share UUIDs are kept
            here so repeat requests need not resupply them.
    """

    caller: Caller
    session: MutableMapping[str, Any] = field(default_factory=dict)
    _permissions: dict[int, frozenset[str]] = field(default_factory=dict, repr=False)
    _views: dict[int, Any] = field(default_factory=dict, repr=False)

    def forget_permissions(self) -> None:
        """Drop permission sets resolved so far, e.g. after grants change."""
        self._permissions.clear()

    def prepared_view(self, post_id: int) -> Any | None:
        """Return the decrypted, parsed view of ``post_id`` built in this request."""
        return self._views.get(post_id)

    def remember_view(self, post_id: int, view: Any) -> None:
        self._views[post_id] = view

    def forget_view(self, post_id: int) -> None:
        self._views.pop(post_id, None)

    def remembered_uuids(self) -> set[str]:
        """Return share UUIDs validated earlier in this session."""
        return set(self.session.get(SESSION_UUIDS_KEY, ()))

    def remember_uuid(self, value: str) -> None:
        uuids = self.remembered_uuids()
        uuids.add(value)
        self.session[SESSION_UUIDS_KEY] = sorted(uuids)


class PermissionResolver:
    """Computes what a caller may do to a post."""

    def __init__(self, db: Session, context: RequestContext) -> None:
        self.db = db
        self.context = context

    @property
    def caller(self) -> Caller:
        return self.context.caller

    def _is_unrestricted(self, post: Post) -> bool:
        return self.caller.is_admin or post.created_by == self.caller.user_id

    def resolve(self, post: Post) -> PermissionSet:
        """Return the permission constants the caller holds on ``post``.

        Admins and the post's creator receive ``ALL_PERMISSIONS``; check for it
        before treating the result as a set.
        """
        if self._is_unrestricted(post):
            return ALL_PERMISSIONS

        cached = self.context._permissions.get(post.id)
        if cached is not None:
            return cached

        rows = self.db.execute(
            select(Permission.constant)
            .join(PostPermission, PostPermission.permission_id == Permission.id)
            .join(UserRole, UserRole.role_id == PostPermission.role_id)
            .where(
                PostPermission.post_id == post.id,
                UserRole.user_id == self.caller.user_id,
            )
            .distinct()
        ).scalars()
        resolved = frozenset(constant.lower() for constant in rows)
        self.context._permissions[post.id] = resolved
        return resolved

    def has_permission(self, post: Post, constant: str) -> bool:
        """Return True if the caller holds ``constant`` (case-insensitive) on ``post``."""
        resolved = self.resolve(post)
        if resolved is ALL_PERMISSIONS:
            return True
        return constant.lower() in resolved

    def require(self, post: Post, constant: str) -> None:
        """Raise ``DeniedError`` unless the caller holds ``constant``."""
        if not self.has_permission(post, constant):
            raise DeniedError(post.id, constant.lower())

    def uuid_permission(self, post: Post, uuid_token: str | None = None) -> bool:
        """Return True if the caller may read ``post``, directly or via its share UUID.

        A supplied token must match the post's UUID (canonical or compact form)
        and the post must be shared. A wrong token denies even when an earlier
        token from this session would have matched.
        """
        if self.has_permission(post, READ):
            return True
        if not post.shared:
            return False

        expected = post.uuid.lower()
        if uuid_token:
            if canonical_uuid(uuid_token) != expected:
                return False
            self.context.remember_uuid(expected)
            return True
        return expected in self.context.remembered_uuids()

    def visibility_clause(self) -> ColumnElement[bool] | None:
        """Return the SQL predicate selecting posts the caller may read.

        A post is visible when one of the caller's roles holds ``read`` on it,
        or when the caller created it. Admins see everything (``None``).
        """
        if self.caller.is_admin:
            return None
        readable = (
            select(PostPermission.post_id)
            .join(Permission, PostPermission.permission_id == Permission.id)
            .join(UserRole, UserRole.role_id == PostPermission.role_id)
            .where(
                func.lower(Permission.constant) == READ,
                UserRole.user_id == self.caller.user_id,
            )
        )
        return or_(Post.created_by == self.caller.user_id, Post.id.in_(readable))
