# src/wikicore/services/revisions.py
"""Draft tracking, commits and word-level diffs of post content.

Per (post, editor) a revision moves through ``NoDraft -> Draft -> Committed``
or ``Draft -> DiscardedDraft``. Drafts carry sequence 0; committing reuses the
draft row and gives it the next committed sequence number for the post.
"""

from __future__ import annotations

import difflib
import html
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wikicore.core.errors import ConflictError, EncryptionFailure, NotFoundError
from wikicore.core.settings import settings
from wikicore.db.time import utcnow
from wikicore.models import DRAFT_SEQUENCE, Post, Revision
from wikicore.services.cache import ListingCache, get_cache, revisions_key
from wikicore.services.crypto import ContentCipher, get_cipher
from wikicore.services.indexer import InvertedIndex
from wikicore.services.permissions import WRITE, PermissionResolver, RequestContext
from wikicore.services.teaser import extract_teaser

logger = logging.getLogger(__name__)

DiffOp = Literal["equal", "insert", "delete"]

# Words and the whitespace between them are separate tokens.
_WORD_TOKEN = re.compile(r"\s+|\S+")


class ReindexQueue(Protocol):
    """Anything that can defer reindexing of a post."""

    def enqueue(self, post_id: int) -> None: ...


@dataclass(frozen=True)
class DiffSegment:
    op: DiffOp
    text: str


@dataclass
class DraftDiff:
    """Difference between one editor's draft and the committed content."""

    revision_id: int
    editor_id: int
    saved_at: datetime
    content: str
    segments: list[DiffSegment] = field(default_factory=list)
    degraded: bool = False

    def to_html(self) -> str:
        """Render the segments with ``<ins>``/``<del>`` highlighting."""
        parts = []
        for segment in self.segments:
            text = html.escape(segment.text)
            if segment.op == "insert":
                parts.append(f"<ins>{text}</ins>")
            elif segment.op == "delete":
                parts.append(f"<del>{text}</del>")
            else:
                parts.append(text)
        return "".join(parts)


def word_diff(old: str, new: str) -> list[DiffSegment]:
    """Return insert/delete/equal segments turning ``old`` into ``new`` word by word."""
    old_words = _WORD_TOKEN.findall(old)
    new_words = _WORD_TOKEN.findall(new)
    matcher = difflib.SequenceMatcher(None, old_words, new_words, autojunk=False)
    segments: list[DiffSegment] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            segments.append(DiffSegment("equal", "".join(old_words[i1:i2])))
            continue
        if tag in ("delete", "replace"):
            segments.append(DiffSegment("delete", "".join(old_words[i1:i2])))
        if tag in ("insert", "replace"):
            segments.append(DiffSegment("insert", "".join(new_words[j1:j2])))
    return segments


class RevisionManager:
    """Autosave, commit and diff operations for one request."""

    def __init__(
        self,
        db: Session,
        context: RequestContext,
        *,
        cipher: ContentCipher | None = None,
        index: InvertedIndex | None = None,
        cache: ListingCache | None = None,
        reindex_queue: ReindexQueue | None = None,
    ) -> None:
        self.db = db
        self.context = context
        self.resolver = PermissionResolver(db, context)
        self.cipher = cipher or get_cipher()
        self.index = index or InvertedIndex(db)
        self.cache = cache or get_cache()
        self.reindex_queue = reindex_queue

    @property
    def editor_id(self) -> int:
        return self.context.caller.user_id

    def _writable_post(self, post_id: int) -> Post:
        post = self.db.get(Post, post_id)
        if post is None:
            raise NotFoundError("Post", post_id)
        self.resolver.require(post, WRITE)
        return post

    def _find_draft(self, post_id: int, editor_id: int) -> Revision | None:
        return self.db.execute(
            select(Revision).where(
                Revision.post_id == post_id,
                Revision.revision == DRAFT_SEQUENCE,
                Revision.created_by == editor_id,
            )
        ).scalar_one_or_none()

    def get_draft(self, post_id: int) -> Revision | None:
        """Return the caller's current draft of ``post_id``, if any."""
        self._writable_post(post_id)
        return self._find_draft(post_id, self.editor_id)

    def autosave(self, post_id: int, content: str) -> Revision:
        """Create or overwrite the caller's draft of ``post_id``.

        The committed content and the index are left untouched. Concurrent
        autosaves by the same editor resolve as last write wins.
        """
        post = self._writable_post(post_id)
        ciphertext = self.cipher.encrypt(content)

        draft = self._find_draft(post_id, self.editor_id)
        if draft is None:
            draft = Revision(
                post_id=post_id,
                revision=DRAFT_SEQUENCE,
                title=post.title,
                created_by=self.editor_id,
                content=ciphertext,
                created_at=utcnow(),
            )
            self.db.add(draft)
            try:
                self.db.commit()
            except IntegrityError:
                # Another autosave created the draft first; overwrite it instead.
                self.db.rollback()
                draft = self._find_draft(post_id, self.editor_id)
                if draft is None:
                    raise
            else:
                return draft

        draft.content = ciphertext
        draft.created_at = utcnow()
        self.db.commit()
        return draft

    def discard(self, post_id: int) -> bool:
        """Delete the caller's draft of ``post_id``. Returns False if there was none."""
        self._writable_post(post_id)
        result = self.db.execute(
            delete(Revision).where(
                Revision.post_id == post_id,
                Revision.revision == DRAFT_SEQUENCE,
                Revision.created_by == self.editor_id,
            )
        )
        self.db.commit()
        return bool(result.rowcount)

    def _next_sequence(self, post_id: int) -> int:
        current = self.db.execute(
            select(func.max(Revision.revision)).where(
                Revision.post_id == post_id,
                Revision.revision > DRAFT_SEQUENCE,
            )
        ).scalar()
        return int(current or 0) + 1

    def commit(self, post_id: int, content: str) -> Revision:
        """Publish ``content`` as the committed content of ``post_id``.

        The post's content and teaser are replaced, the caller's draft (created
        if missing) becomes the next committed revision, the post is reindexed
        and its cached listings are dropped.

        Raises:
            NotFoundError: The post does not exist.
            DeniedError: The caller lacks write permission.
            ConflictError: Sequence assignment kept colliding with concurrent commits.
        """
        post = self._writable_post(post_id)
        # Serialise commits on this post where the backend supports row locks.
        self.db.execute(select(Post.id).where(Post.id == post_id).with_for_update())

        now = utcnow()
        ciphertext = self.cipher.encrypt(content)
        post.content = ciphertext
        post.teaser = self.cipher.encrypt(extract_teaser(content))
        post.updated_by = self.editor_id
        post.updated_at = now

        draft = self._find_draft(post_id, self.editor_id)
        if draft is None:
            draft = Revision(
                post_id=post_id,
                revision=DRAFT_SEQUENCE,
                title=post.title,
                created_by=self.editor_id,
            )
            self.db.add(draft)
        draft.title = post.title
        draft.content = ciphertext
        draft.created_at = now
        self.db.flush()

        for attempt in range(1, settings.commit_max_attempts + 1):
            sequence = self._next_sequence(post_id)
            try:
                with self.db.begin_nested():
                    draft.revision = sequence
                    self.db.flush()
            except IntegrityError:
                logger.warning(
                    "Revision %d of post %s already taken (attempt %d), retrying",
                    sequence,
                    post_id,
                    attempt,
                )
                continue
            break
        else:
            self.db.rollback()
            raise ConflictError(f"Could not assign a revision number to post {post_id}")

        self.db.commit()
        logger.info("Committed revision %d of post %s by user %s", sequence, post_id, self.editor_id)

        self._reindex(post_id, content, post.title)
        self.context.forget_view(post_id)
        self.cache.invalidate(post_id)
        return draft

    def _reindex(self, post_id: int, plaintext: str, title: str) -> None:
        if settings.reindex_async and self.reindex_queue is not None:
            self.reindex_queue.enqueue(post_id)
            return
        try:
            self.index.reindex(post_id, plaintext, title=title)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error("Reindex of post %s failed after commit", post_id, exc_info=True)
            if self.reindex_queue is not None:
                self.reindex_queue.enqueue(post_id)

    def diff(self, post_id: int, editor_id: int | None = None) -> list[DraftDiff]:
        """Diff every open draft of ``post_id`` against its committed content.

        Each editor's draft is compared independently with the same baseline.
        When the committed content cannot be read, drafts are reported as
        entirely inserted text.

        Args:
            post_id: Post whose drafts are compared.
            editor_id: Restrict the result to one editor's draft.
        """
        post = self._writable_post(post_id)
        stmt = select(Revision).where(
            Revision.post_id == post_id,
            Revision.revision == DRAFT_SEQUENCE,
        )
        if editor_id is not None:
            stmt = stmt.where(Revision.created_by == editor_id)
        drafts = list(self.db.execute(stmt.order_by(Revision.id)).scalars())
        if not drafts:
            return []

        baseline: str | None
        try:
            baseline = self.cipher.decrypt(post.content)
        except EncryptionFailure:
            logger.warning("Committed content of post %s is unreadable; diff degraded", post_id)
            baseline = None

        results = []
        for draft in drafts:
            content = self.cipher.decrypt(draft.content)
            result = DraftDiff(
                revision_id=draft.id,
                editor_id=draft.created_by,
                saved_at=draft.created_at,
                content=content,
            )
            if baseline is not None:
                try:
                    result.segments = word_diff(baseline, content)
                except (TypeError, ValueError):
                    logger.warning("Diff of draft %s failed; reporting as inserted", draft.id)
                    baseline_failed = True
                else:
                    baseline_failed = False
            else:
                baseline_failed = True
            if baseline_failed:
                result.segments = [DiffSegment("insert", content)] if content else []
                result.degraded = True
            results.append(result)
        return results

    def history(self, post_id: int) -> list[dict[str, object]]:
        """Return committed revisions of ``post_id``, newest first (cached)."""
        self._writable_post(post_id)
        key = revisions_key(post_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        rows = self.db.execute(
            select(Revision.id, Revision.revision, Revision.title, Revision.created_by, Revision.created_at)
            .where(Revision.post_id == post_id, Revision.revision > DRAFT_SEQUENCE)
            .order_by(Revision.revision.desc())
        ).all()
        history = [
            {
                "id": row.id,
                "revision": row.revision,
                "title": row.title,
                "created_by": row.created_by,
                "created_at": row.created_at.isoformat(),
            }
            for row in rows
        ]
        self.cache.set(key, history)
        return history
