# src/wikicore/services/search.py
"""Ranked, filtered and permission-gated post search."""

from __future__ import annotations

import logging
import math
import re
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Select, distinct, func, or_, select
from sqlalchemy.orm import Session

from wikicore.core.errors import ValidationFailure
from wikicore.core.settings import settings
from wikicore.models import (
    Badge,
    Format,
    Permission,
    Post,
    PostBadge,
    PostIndex,
    PostPermission,
    PostTag,
    Role,
    Tag,
    Type,
)
from wikicore.services.crypto import ContentCipher, get_cipher
from wikicore.services.indexer import InvertedIndex
from wikicore.services.permissions import PermissionResolver, RequestContext

logger = logging.getLogger(__name__)

RELEVANCE = "relevance"

SORT_ORDERS = {
    "updatednew": (Post.updated_at.desc(),),
    "updatedold": (Post.updated_at.asc(),),
    "creatednew": (Post.created_at.desc(),),
    "createdold": (Post.created_at.asc(),),
    "titleaz": (Post.title.asc(),),
    "titleza": (Post.title.desc(),),
    "mostviews": (Post.clicks.desc(),),
}

# Only a standalone "or" switches to OR semantics; "storage" or "history" do not.
_OR_PATTERN = re.compile(r"\bor\b", re.IGNORECASE)
_FILTER_VALUE = re.compile(r"^[\w\-. ]+$", re.UNICODE)

PERMISSION_MARKERS = {"read": "R", "write": "W"}


def _split(value: str | Sequence[str] | None) -> list[str]:
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else list(value)
    cleaned = [str(item).strip() for item in items]
    return [item for item in cleaned if item]


def _validated(category: str, values: list[str]) -> list[str]:
    for value in values:
        if not _FILTER_VALUE.match(value):
            raise ValidationFailure(f"Malformed {category} filter value: {value!r}")
    return values


def is_or_query(query: str) -> bool:
    """Return True when the raw query contains the word ``or``."""
    return bool(_OR_PATTERN.search(query))


@dataclass
class SearchFilters:
    """Catalog filters. Values are ids or names; each category ORs its values."""

    badges: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    types: list[str] = field(default_factory=list)
    formats: list[str] = field(default_factory=list)
    hidden: bool = False
    deleted: bool = False
    sort: str = RELEVANCE

    def __post_init__(self) -> None:
        self.badges = _validated("badge", _split(self.badges))
        self.tags = _validated("tag", _split(self.tags))
        self.types = _validated("type", _split(self.types))
        self.formats = _validated("format", _split(self.formats))
        sort = (self.sort or RELEVANCE).strip().lower()
        if sort != RELEVANCE and sort not in SORT_ORDERS:
            logger.info("Unsupported sort key %r, using default ordering", self.sort)
            sort = RELEVANCE
        self.sort = sort

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> SearchFilters:
        """Build filters from query-string style parameters.

        ``badge``/``tag``/``type``/``format`` hold comma separated values;
        the presence of ``hidden`` or ``deleted`` switches that flag on.
        """
        return cls(
            badges=params.get("badge"),
            tags=params.get("tag"),
            types=params.get("type"),
            formats=params.get("format"),
            hidden="hidden" in params and params["hidden"] not in (False, "false", "0"),
            deleted="deleted" in params and params["deleted"] not in (False, "false", "0"),
            sort=params.get("sort") or RELEVANCE,
        )


@dataclass
class SearchHit:
    """One post in a result page plus its batch-loaded metadata."""

    post: Post
    weight: int | None = None
    teaser: str | None = None
    badges: list[dict[str, Any]] = field(default_factory=list)
    tags: list[dict[str, Any]] = field(default_factory=list)
    permissions: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class SearchPage:
    """A page of hits with what is needed for next/previous controls."""

    hits: list[SearchHit]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.page_size)) if self.page_size else 1

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def previous_page(self) -> int | None:
        return self.page - 1 if self.has_previous else None

    @property
    def next_page(self) -> int | None:
        return self.page + 1 if self.has_next else None


def _catalog_clause(column, model, values: list[str]):
    """Match ``column`` against catalog rows given by numeric id or by name."""
    ids = [int(value) for value in values if value.isdigit()]
    names = [value for value in values if not value.isdigit()]
    clauses = []
    if ids:
        clauses.append(column.in_(ids))
    if names:
        clauses.append(column.in_(select(model.id).where(model.name.in_(names))))
    return or_(*clauses)


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SearchEngine:
    """Builds permission-gated, filtered, ranked and paginated result sets."""

    def __init__(
        self,
        db: Session,
        context: RequestContext,
        *,
        index: InvertedIndex | None = None,
        cipher: ContentCipher | None = None,
        page_size: int | None = None,
    ) -> None:
        self.db = db
        self.context = context
        self.resolver = PermissionResolver(db, context)
        self.index = index or InvertedIndex(db)
        self.cipher = cipher or get_cipher()
        self.page_size = page_size or settings.search_page_size

    def search(
        self,
        query: str | None = None,
        filters: SearchFilters | None = None,
        page: int = 1,
        *,
        title_only: bool = False,
    ) -> SearchPage:
        """Return one page of posts visible to the caller.

        Args:
            query: Keyword query. Blank queries, or ones made only of stop
                words, list posts without keyword matching.
            filters: Catalog, visibility flag and sort options.
            page: 1-based page number.
            title_only: Match ``query`` as a substring of titles instead of
                using the index; metadata is not attached in this mode.
        """
        filters = filters or SearchFilters()
        page = max(1, int(page))
        keyword = (query or "").strip()

        keys: list[str] = []
        if keyword and not title_only:
            keys = list(dict.fromkeys(self.index.query_keys(keyword)))

        if keys:
            stmt: Select[Any] = (
                select(Post, func.sum(PostIndex.weight).label("weight"))
                .join(PostIndex, PostIndex.post_id == Post.id)
                .where(PostIndex.word.in_(keys))
                .group_by(Post.id)
            )
            if not is_or_query(keyword):
                stmt = stmt.having(func.count(distinct(PostIndex.word)) >= len(keys))
        else:
            stmt = select(Post)

        visible = self.resolver.visibility_clause()
        if visible is not None:
            stmt = stmt.where(visible)

        stmt = self._apply_filters(stmt, filters)
        if title_only and keyword:
            stmt = stmt.where(Post.title.ilike(f"%{_escape_like(keyword)}%", escape="\\"))

        total = self.db.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()

        stmt = stmt.order_by(*self._ordering(filters.sort, ranked=bool(keys)))
        stmt = stmt.offset((page - 1) * self.page_size).limit(self.page_size)

        if keys:
            hits = [
                SearchHit(post=post, weight=int(weight or 0))
                for post, weight in self.db.execute(stmt).all()
            ]
        else:
            hits = [SearchHit(post=post) for post in self.db.execute(stmt).scalars()]

        if not title_only:
            self.attach_metadata(hits)
        return SearchPage(hits=hits, total=int(total), page=page, page_size=self.page_size)

    def _apply_filters(self, stmt: Select[Any], filters: SearchFilters) -> Select[Any]:
        if filters.types:
            stmt = stmt.where(_catalog_clause(Post.type_id, Type, filters.types))
        if filters.formats:
            stmt = stmt.where(_catalog_clause(Post.format_id, Format, filters.formats))
        if filters.badges:
            stmt = stmt.where(
                Post.id.in_(
                    select(PostBadge.post_id).where(
                        _catalog_clause(PostBadge.badge_id, Badge, filters.badges)
                    )
                )
            )
        if filters.tags:
            stmt = stmt.where(
                Post.id.in_(
                    select(PostTag.post_id).where(
                        _catalog_clause(PostTag.tag_id, Tag, filters.tags)
                    )
                )
            )
        return stmt.where(Post.deleted.is_(filters.deleted), Post.hidden.is_(filters.hidden))

    @staticmethod
    def _ordering(sort: str, *, ranked: bool) -> tuple[Any, ...]:
        if sort in SORT_ORDERS:
            return (*SORT_ORDERS[sort], Post.id.asc())
        if ranked:
            # Equal weight sums fall back to ascending post id.
            return (func.sum(PostIndex.weight).desc(), Post.id.asc())
        return (Post.updated_at.desc(), Post.id.asc())

    def attach_metadata(self, hits: list[SearchHit]) -> list[SearchHit]:
        """Attach badges, tags, a per-role R/W summary and the teaser to each hit.

        Three queries are issued for the whole page regardless of its size.
        """
        post_ids = [hit.post.id for hit in hits]
        if not post_ids:
            return hits

        badges: dict[int, list[dict[str, Any]]] = defaultdict(list)
        for post_id, name, image in self.db.execute(
            select(PostBadge.post_id, Badge.name, Badge.image)
            .join(Badge, PostBadge.badge_id == Badge.id)
            .where(PostBadge.post_id.in_(post_ids))
            .order_by(Badge.name)
        ):
            badges[post_id].append({"name": name, "image": image})

        tags: dict[int, list[dict[str, Any]]] = defaultdict(list)
        for post_id, name in self.db.execute(
            select(PostTag.post_id, Tag.name)
            .join(Tag, PostTag.tag_id == Tag.id)
            .where(PostTag.post_id.in_(post_ids))
            .order_by(Tag.name)
        ):
            tags[post_id].append({"name": name})

        summaries = permission_summaries(self.db, post_ids)

        for hit in hits:
            post_id = hit.post.id
            hit.badges = badges.get(post_id, [])
            hit.tags = tags.get(post_id, [])
            hit.permissions = summaries.get(post_id, {})
            hit.teaser = self.cipher.decrypt(hit.post.teaser)
        return hits


def permission_summaries(db: Session, post_ids: Sequence[int]) -> dict[int, dict[str, list[str]]]:
    """Return ``{post_id: {role name: ["R", "W"]}}`` for the given posts in one query.

    Only read and write grants appear in the summary.
    """
    summaries: dict[int, dict[str, list[str]]] = defaultdict(dict)
    if not post_ids:
        return {}
    for post_id, role_name, constant in db.execute(
        select(PostPermission.post_id, Role.name, Permission.constant)
        .join(Role, PostPermission.role_id == Role.id)
        .join(Permission, PostPermission.permission_id == Permission.id)
        .where(PostPermission.post_id.in_(list(post_ids)))
        .order_by(Role.name, Permission.constant)
    ):
        marker = PERMISSION_MARKERS.get(constant.lower())
        if marker is None:
            continue
        summaries[post_id].setdefault(role_name, []).append(marker)
    return dict(summaries)
