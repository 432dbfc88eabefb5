# src/wikicore/services/indexer.py
"""Inverted index over committed post content."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from wikicore.core.settings import settings
from wikicore.db.time import utcnow
from wikicore.models import Post, PostIndex
from wikicore.services.stemmer import Stemmer, get_stemmer
from wikicore.utils.hash import TERM_DIGEST_HEX_LENGTH, term_digest

logger = logging.getLogger(__name__)

# A stem found in the title counts this many times toward the term weight.
TITLE_WEIGHT = 3


class InvertedIndex:
    """Maintains word -> (post, weight) postings in the ``post_indexes`` table.

    Postings always mirror the current committed content of a post: reindexing
    deletes the old postings before inserting the new ones.
    """

    def __init__(
        self,
        db: Session,
        stemmer: Stemmer | None = None,
        *,
        hash_terms: bool | None = None,
    ) -> None:
        self.db = db
        self.stemmer = stemmer or get_stemmer()
        self.hash_terms = settings.use_encryption if hash_terms is None else hash_terms

    def stem(self, text: str) -> list[str]:
        """Return the ordered, de-duplicated terms of ``text``."""
        return self.stemmer.stem(text)

    def term_key(self, term: str) -> str:
        """Return the stored form of ``term``.

        That is its digest in encryption mode, otherwise the term cut to the
        column width.
        """
        if self.hash_terms:
            return term_digest(term)
        return term[:TERM_DIGEST_HEX_LENGTH]

    def query_keys(self, text: str) -> list[str]:
        """Stem a keyword query and map each term to its stored form."""
        return [self.term_key(term) for term in self.stem(text)]

    def weigh(self, content: str, title: str | None = None) -> Counter[str]:
        """Return per-term weights for a post body and optional title."""
        weights = self.stemmer.stem_counts(content)
        if title:
            for term, count in self.stemmer.stem_counts(title).items():
                weights[term] += count * TITLE_WEIGHT
        return weights

    def reindex(self, post_id: int, plaintext: str, title: str | None = None) -> int:
        """Replace every posting for ``post_id`` with those derived from ``plaintext``.

        The caller owns the transaction; this method only flushes.

        Returns:
            Number of postings written.
        """
        weights = self.weigh(plaintext, title)
        self.db.execute(delete(PostIndex).where(PostIndex.post_id == post_id))
        postings: dict[str, int] = {}
        for term, weight in weights.items():
            key = self.term_key(term)
            postings[key] = postings.get(key, 0) + weight
        self.db.add_all(
            PostIndex(post_id=post_id, word=word, weight=weight)
            for word, weight in postings.items()
        )
        self.db.execute(
            update(Post).where(Post.id == post_id).values(indexed_at=utcnow())
        )
        self.db.flush()
        logger.debug("Indexed post %s with %d postings", post_id, len(postings))
        return len(postings)

    def delete(self, post_id: int) -> int:
        """Remove every posting for ``post_id``."""
        result = self.db.execute(delete(PostIndex).where(PostIndex.post_id == post_id))
        return int(result.rowcount or 0)

    def postings_for(self, post_id: int) -> dict[str, int]:
        """Return ``{word: weight}`` for one post."""
        rows = self.db.execute(
            select(PostIndex.word, PostIndex.weight).where(PostIndex.post_id == post_id)
        )
        return {word: weight for word, weight in rows}

    def lookup(self, terms: Iterable[str]) -> dict[int, list[PostIndex]]:
        """Return postings matching any of ``terms``, grouped by post id.

        ``terms`` are plain stems; they are hashed here when required.
        """
        keys = list(dict.fromkeys(self.term_key(term) for term in terms))
        if not keys:
            return {}
        grouped: dict[int, list[PostIndex]] = defaultdict(list)
        for posting in self.db.execute(
            select(PostIndex).where(PostIndex.word.in_(keys)).order_by(PostIndex.post_id)
        ).scalars():
            grouped[posting.post_id].append(posting)
        return dict(grouped)

    def stale_post_ids(self, limit: int = 100) -> list[int]:
        """Return ids of posts whose content changed after they were last indexed."""
        return list(
            self.db.execute(
                select(Post.id)
                .where(Post.indexed_at < Post.updated_at)
                .order_by(Post.updated_at)
                .limit(limit)
            ).scalars()
        )
