# src/wikicore/services/posts.py
"""Post lookup, creation, presentation and removal."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from wikicore.core.errors import DeniedError, NotFoundError, ValidationFailure
from wikicore.core.settings import settings
from wikicore.db.time import utcnow
from wikicore.models import (
    NEVER_INDEXED,
    Format,
    Permission,
    Post,
    PostBadge,
    PostLock,
    PostPermission,
    PostRead,
    PostTag,
    Revision,
    Route,
    User,
)
from wikicore.services.cache import (
    TITLES_KEY,
    ListingCache,
    get_cache,
    permission_summary_key,
)
from wikicore.services.crypto import ContentCipher, get_cipher
from wikicore.services.indexer import InvertedIndex
from wikicore.services.parser import ParseContext, ParserKind, ParserRegistry
from wikicore.services.permissions import READ, WRITE, PermissionResolver, RequestContext
from wikicore.services.search import permission_summaries
from wikicore.utils.uuids import new_post_uuid

logger = logging.getLogger(__name__)

# Tables holding rows owned by a post, children first. Index postings are
# removed through InvertedIndex.delete.
OWNED_TABLES = (PostBadge, PostTag, PostLock, PostPermission, PostRead, Revision, Route)


@dataclass
class PostView:
    """Request-scoped presentation of a post.

    Plaintext only ever lives here; the ORM instance keeps its ciphertext so
    nothing decrypted can be flushed back to the store.
    """

    post: Post
    content: str
    html: str
    global_html: list[str] = field(default_factory=list)

    @property
    def rendered(self) -> str:
        return "".join([*self.global_html, self.html])


class PostService:
    """Operations on whole posts for one request."""

    def __init__(
        self,
        db: Session,
        context: RequestContext,
        *,
        cipher: ContentCipher | None = None,
        cache: ListingCache | None = None,
        parsers: ParserRegistry | None = None,
    ) -> None:
        self.db = db
        self.context = context
        self.resolver = PermissionResolver(db, context)
        self.cipher = cipher or get_cipher()
        self.cache = cache or get_cache()
        self.parsers = parsers or ParserRegistry()

    def get(self, post_id: int) -> Post:
        """Return the post or raise ``NotFoundError``."""
        post = self.db.get(Post, post_id)
        if post is None:
            raise NotFoundError("Post", post_id)
        return post

    def get_readable(self, post_id: int, uuid_token: str | None = None) -> Post:
        """Return the post if the caller may read it, directly or via a share UUID."""
        post = self.get(post_id)
        if not self.resolver.uuid_permission(post, uuid_token):
            raise DeniedError(post.id, READ)
        return post

    def create(
        self,
        title: str,
        *,
        format_id: int,
        type_id: int,
        mode_id: int,
        slug: str = "",
        framework_id: int | None = None,
    ) -> Post:
        """Create an empty post owned by the caller, plus its route."""
        user_id = self.context.caller.user_id
        now = utcnow()
        empty = self.cipher.encrypt("")
        post = Post(
            uuid=new_post_uuid(),
            title=title,
            slug=slug,
            content=empty,
            teaser=empty,
            format_id=format_id,
            type_id=type_id,
            framework_id=framework_id,
            mode_id=mode_id,
            indexed_at=NEVER_INDEXED,
            created_by=user_id,
            updated_by=user_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(post)
        self.db.flush()
        self.db.add(Route(slug=slug, post_id=post.id))
        self.db.commit()
        self.cache.invalidate(post.id)
        logger.info("User %s created post %s", user_id, post.id)
        return post

    def _parse(self, post: Post, plaintext: str) -> str:
        fmt = self.db.get(Format, post.format_id)
        kind = ParserKind.from_constant(fmt.constant) if fmt is not None else ParserKind.TEXT
        caller = self.context.caller
        context = ParseContext(
            user_id=caller.user_id,
            is_admin=caller.is_admin,
            is_authenticated=caller.is_authenticated,
            post_id=post.id,
            post_creator=post.created_by,
        )
        return self.parsers.parse(kind, plaintext, context)

    def _global_post_ids(self, post: Post) -> list[int]:
        # Site-wide content renders before the user's own global post.
        ids = []
        if settings.global_post_id:
            ids.append(settings.global_post_id)
        user = self.db.get(User, self.context.caller.user_id)
        if user is not None and user.global_post_id:
            ids.append(user.global_post_id)
        return [gid for gid in dict.fromkeys(ids) if gid != post.id]

    def prepare(self, post: Post) -> PostView:
        """Decrypt and parse ``post`` with the site's and user's global content.

        The view is built at most once per post for the lifetime of the
        request context.
        """
        cached = self.context.prepared_view(post.id)
        if cached is not None:
            return cached
        plaintext = self.cipher.decrypt(post.content)
        view = PostView(post=post, content=plaintext, html=self._parse(post, plaintext))
        for global_id in self._global_post_ids(post):
            global_post = self.db.get(Post, global_id)
            if global_post is None or global_post.deleted:
                continue
            view.global_html.append(
                self._parse(global_post, self.cipher.decrypt(global_post.content))
            )
        self.context.remember_view(post.id, view)
        return view

    def increment_clicks(self, post_id: int) -> None:
        """Count one view directly in the store."""
        result = self.db.execute(
            update(Post).where(Post.id == post_id).values(clicks=Post.clicks + 1)
        )
        if not result.rowcount:
            self.db.rollback()
            raise NotFoundError("Post", post_id)
        self.db.commit()

    def _require_owner(self, post: Post) -> None:
        caller = self.context.caller
        if not (caller.is_admin or post.created_by == caller.user_id):
            raise DeniedError(post.id, WRITE)
        self.resolver.require(post, WRITE)

    def _set_deleted(self, post_id: int, deleted: bool) -> Post:
        post = self.get(post_id)
        self._require_owner(post)
        post.deleted = deleted
        post.updated_by = self.context.caller.user_id
        self.db.commit()
        self.cache.invalidate(post_id)
        return post

    def soft_delete(self, post_id: int) -> Post:
        """Flag the post as deleted. Only the admin or the creator may do this."""
        return self._set_deleted(post_id, True)

    def undelete(self, post_id: int) -> Post:
        return self._set_deleted(post_id, False)

    def delete_permanently(self, post_id: int) -> None:
        """Remove the post and every row it owns in a single transaction."""
        post = self.get(post_id)
        self._require_owner(post)
        try:
            InvertedIndex(self.db).delete(post_id)
            for model in OWNED_TABLES:
                self.db.execute(delete(model).where(model.post_id == post_id))
            self.db.execute(delete(Post).where(Post.id == post_id))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.context.forget_view(post_id)
        self.cache.invalidate(post_id)
        logger.info("User %s permanently deleted post %s", self.context.caller.user_id, post_id)

    def replace_permissions(
        self,
        post_id: int,
        grants: Mapping[int, Iterable[str]],
        *,
        shared: bool = False,
    ) -> None:
        """Replace every grant on the post and set its ``shared`` flag.

        Args:
            post_id: Post to update.
            grants: Role id mapped to the permission constants that role receives.
            shared: Whether the post may be read through its UUID.
        """
        post = self.get(post_id)
        self.resolver.require(post, WRITE)

        wanted = {constant.lower() for constants in grants.values() for constant in constants}
        ids = {
            constant.lower(): permission_id
            for permission_id, constant in self.db.execute(select(Permission.id, Permission.constant))
        }
        unknown = wanted - ids.keys()
        if unknown:
            raise ValidationFailure(f"Unknown permission constants: {sorted(unknown)}")

        self.db.execute(delete(PostPermission).where(PostPermission.post_id == post_id))
        self.db.add_all(
            PostPermission(post_id=post_id, role_id=role_id, permission_id=ids[constant.lower()])
            for role_id, constants in grants.items()
            for constant in dict.fromkeys(c.lower() for c in constants)
        )
        post.shared = shared
        self.db.commit()
        # Grants changed; anything resolved earlier in this request is stale.
        self.context.forget_permissions()
        self.cache.invalidate(post_id)

    def permission_summary(self, post_id: int) -> dict[str, list[str]]:
        """Return the per-role ``R``/``W`` summary of a readable post (cached)."""
        self.get_readable(post_id)
        key = permission_summary_key(post_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        summary = permission_summaries(self.db, [post_id]).get(post_id, {})
        self.cache.set(key, summary)
        return summary

    def all_titles(self) -> dict[str, int]:
        """Return ``{title: id}`` for every undeleted post (cached)."""
        cached = self.cache.get(TITLES_KEY)
        if cached is not None:
            return cached
        titles = {
            title: post_id
            for post_id, title in self.db.execute(
                select(Post.id, Post.title).where(Post.deleted.is_(False)).order_by(Post.id)
            )
        }
        self.cache.set(TITLES_KEY, titles)
        return titles
