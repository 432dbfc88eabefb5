"""Background reindexing of committed posts.

Commits never wait for the index. When ``REINDEX_ASYNC`` is set, or when a
synchronous reindex fails, the post id is queued here and reindexed from its
stored ciphertext with bounded retries. Search results may be briefly stale
in the meantime.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractContextManager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wikicore.core.errors import WikiError
from wikicore.core.settings import settings
from wikicore.db.session import SessionLocal
from wikicore.models import Post
from wikicore.services.crypto import ContentCipher, get_cipher
from wikicore.services.indexer import InvertedIndex

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class ReindexWorker:
    """Consumes queued post ids and rebuilds their postings.

    Each job opens its own session, so the worker shares no state with the
    request that queued it.
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        *,
        cipher: ContentCipher | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        self.session_factory = session_factory or SessionLocal
        self.cipher = cipher or get_cipher()
        self.max_retries = settings.reindex_max_retries if max_retries is None else max_retries
        self.retry_delay = (
            settings.reindex_retry_delay_seconds if retry_delay is None else retry_delay
        )
        self._queue: asyncio.Queue[tuple[int, int]] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopping = asyncio.Event()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, post_id: int, attempt: int = 0) -> None:
        """Queue ``post_id`` for reindexing. Safe to call from any thread."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is not None and running is not self._loop and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, (post_id, attempt))
        else:
            self._queue.put_nowait((post_id, attempt))

    async def start(self) -> None:
        """Start the background consumer."""
        if self._task is None or self._task.done():
            loop = asyncio.get_running_loop()
            if self._loop is not None and self._loop is not loop:
                # Queues bind to the first loop that waits on them; carry jobs over.
                queue: asyncio.Queue[tuple[int, int]] = asyncio.Queue()
                while not self._queue.empty():
                    queue.put_nowait(self._queue.get_nowait())
                self._queue = queue
                self._stopping = asyncio.Event()
            self._loop = loop
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the consumer once the job in progress finishes."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None

    async def join(self) -> None:
        """Wait until every queued job has been attempted once."""
        await self._queue.join()

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                post_id, attempt = await asyncio.wait_for(self._queue.get(), timeout=0.2)
            except asyncio.TimeoutError:
                continue
            try:
                await self.process(post_id, attempt)
            except Exception as err:
                # The consumer must outlive any single job.
                logger.error("Unexpected error reindexing post %s", post_id, exc_info=True)
                self._retry_later(post_id, attempt, err)
            finally:
                self._queue.task_done()

    async def process(self, post_id: int, attempt: int = 0) -> bool:
        """Reindex one post, scheduling a retry on failure.

        Returns:
            True when the post was reindexed (or no longer exists).
        """
        try:
            await asyncio.to_thread(self._reindex_one, post_id)
        except (SQLAlchemyError, WikiError) as err:
            self._retry_later(post_id, attempt, err)
            return False
        return True

    def _retry_later(self, post_id: int, attempt: int, err: Exception) -> None:
        next_attempt = attempt + 1
        if next_attempt >= self.max_retries:
            logger.error(
                "Giving up reindex of post %s after %d attempts: %s",
                post_id,
                next_attempt,
                err,
            )
            return
        logger.warning(
            "Reindex of post %s failed (attempt %d/%d): %s",
            post_id,
            next_attempt,
            self.max_retries,
            err,
        )
        asyncio.get_running_loop().call_later(
            self.retry_delay, self._queue.put_nowait, (post_id, next_attempt)
        )

    def _reindex_one(self, post_id: int) -> int:
        with self.session_factory() as db:
            post = db.get(Post, post_id)
            if post is None:
                logger.info("Post %s vanished before reindexing", post_id)
                return 0
            plaintext = self.cipher.decrypt(post.content)
            written = InvertedIndex(db).reindex(post_id, plaintext, title=post.title)
            db.commit()
            return written

    def sweep_stale(self, limit: int = 100) -> int:
        """Queue posts edited since they were last indexed; return how many."""
        with self.session_factory() as db:
            stale = InvertedIndex(db).stale_post_ids(limit)
        for post_id in stale:
            self.enqueue(post_id)
        if stale:
            logger.info("Queued %d stale posts for reindexing", len(stale))
        return len(stale)


_worker: ReindexWorker | None = None


def get_reindex_worker() -> ReindexWorker:
    """Return the process-wide reindex worker."""
    global _worker
    if _worker is None:
        _worker = ReindexWorker()
    return _worker
