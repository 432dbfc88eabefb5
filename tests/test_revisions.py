# mypy: ignore-errors
# tests/test_revisions.py
"""Tests for autosave, commit and draft diffs."""

import pytest
from sqlalchemy import select

from wikicore.core.errors import ConflictError, DeniedError, NotFoundError
from wikicore.models import Post, Revision
from wikicore.services.cache import ALL_POSTS_KEY, post_key
from wikicore.services.indexer import InvertedIndex
from wikicore.services.revisions import DiffSegment, RevisionManager, word_diff
from wikicore.services.search import SearchEngine
from tests.helpers import context_for


def _revisions(db_session, post_id):
    return list(
        db_session.execute(
            select(Revision).where(Revision.post_id == post_id).order_by(Revision.id)
        ).scalars()
    )


@pytest.fixture()
def editable(seed):
    return {seed.readers_role: [seed.read], seed.editors_role: [seed.write]}


def test_three_autosaves_then_commit_leave_one_row(db_session, seed, make_post, cipher) -> None:
    post = make_post("Draft me", "original")
    manager = RevisionManager(db_session, context_for(seed.author))

    first = manager.autosave(post.id, "one")
    manager.autosave(post.id, "one two")
    manager.autosave(post.id, "one two three")
    committed = manager.commit(post.id, "one two three four")

    rows = _revisions(db_session, post.id)
    assert len(rows) == 1
    assert rows[0].id == first.id == committed.id
    assert rows[0].revision == 1
    assert cipher.decrypt(rows[0].content) == "one two three four"


def test_autosave_does_not_touch_committed_content(db_session, seed, make_post, cipher) -> None:
    post = make_post("Stable", "committed text")
    before = InvertedIndex(db_session).postings_for(post.id)

    RevisionManager(db_session, context_for(seed.author)).autosave(post.id, "draft text only")
    db_session.refresh(post)

    assert cipher.decrypt(post.content) == "committed text"
    assert InvertedIndex(db_session).postings_for(post.id) == before


def test_autosave_overwrites_the_same_draft(db_session, seed, make_post, cipher) -> None:
    post = make_post("Overwrite")
    manager = RevisionManager(db_session, context_for(seed.author))

    manager.autosave(post.id, "first")
    draft = manager.autosave(post.id, "second")

    rows = _revisions(db_session, post.id)
    assert [row.id for row in rows] == [draft.id]
    assert rows[0].is_draft
    assert cipher.decrypt(manager.get_draft(post.id).content) == "second"


def test_commit_sequences_are_contiguous(db_session, seed, make_post) -> None:
    post = make_post("Sequenced")
    manager = RevisionManager(db_session, context_for(seed.author))

    for n in range(4):
        manager.commit(post.id, f"version {n}")

    sequences = [row.revision for row in _revisions(db_session, post.id)]
    assert sequences == [1, 2, 3, 4]


def test_commit_without_draft_creates_revision(db_session, seed, make_post) -> None:
    post = make_post("No draft")

    revision = RevisionManager(db_session, context_for(seed.author)).commit(post.id, "direct")

    assert revision.revision == 1
    assert revision.created_by == seed.author.id


def test_commit_updates_post_teaser_and_index(db_session, seed, make_post, cipher) -> None:
    post = make_post("Indexed", "old words", grants={seed.readers_role: [seed.read]})

    RevisionManager(db_session, context_for(seed.author)).commit(
        post.id, "<teaser>Fresh intro</teaser> brand new gadget"
    )
    db_session.refresh(post)

    assert cipher.decrypt(post.content) == "<teaser>Fresh intro</teaser> brand new gadget"
    assert cipher.decrypt(post.teaser) == "Fresh intro"
    engine = SearchEngine(db_session, context_for(seed.reader))
    assert [hit.post.id for hit in engine.search("gadget").hits] == [post.id]
    assert engine.search("old words").hits == []


def test_commit_invalidates_cached_listings(db_session, seed, make_post, listing_cache) -> None:
    post = make_post("Cached")
    listing_cache.set(ALL_POSTS_KEY, [post.id])
    listing_cache.set(post_key(post.id), {"title": "Cached"})

    RevisionManager(db_session, context_for(seed.author)).commit(post.id, "new body")

    assert listing_cache.get(ALL_POSTS_KEY) is None
    assert listing_cache.get(post_key(post.id)) is None


def test_commit_retries_when_sequence_is_taken(db_session, seed, make_post, mocker) -> None:
    post = make_post("Raced", grants={seed.editors_role: [seed.write]})
    RevisionManager(db_session, context_for(seed.author)).commit(post.id, "first")

    manager = RevisionManager(db_session, context_for(seed.editor))
    real_next = manager._next_sequence
    stale = iter([1])
    # First read returns a stale maximum, as if another commit landed meanwhile.
    mocker.patch.object(
        manager, "_next_sequence", side_effect=lambda pid: next(stale, None) or real_next(pid)
    )

    revision = manager.commit(post.id, "second")

    assert revision.revision == 2
    sequences = sorted(row.revision for row in _revisions(db_session, post.id))
    assert sequences == [1, 2]


def test_commit_gives_up_after_repeated_conflicts(db_session, seed, make_post, mocker) -> None:
    post = make_post("Hopeless")
    manager = RevisionManager(db_session, context_for(seed.author))
    manager.commit(post.id, "first")
    mocker.patch.object(manager, "_next_sequence", return_value=1)

    with pytest.raises(ConflictError):
        manager.commit(post.id, "second")

    assert [row.revision for row in _revisions(db_session, post.id)] == [1]


def test_reindex_failure_does_not_fail_commit(db_session, seed, make_post, mocker) -> None:
    post = make_post("Fragile")
    queue = mocker.Mock()
    manager = RevisionManager(db_session, context_for(seed.author), reindex_queue=queue)
    mocker.patch.object(manager.index, "reindex", side_effect=RuntimeError("index down"))

    revision = manager.commit(post.id, "still committed")

    assert revision.revision == 1
    queue.enqueue.assert_called_once_with(post.id)


def test_permission_checked_before_mutation(db_session, seed, make_post) -> None:
    post = make_post("Guarded", grants={seed.readers_role: [seed.read]})
    manager = RevisionManager(db_session, context_for(seed.reader))

    with pytest.raises(DeniedError):
        manager.autosave(post.id, "sneaky")
    with pytest.raises(DeniedError):
        manager.commit(post.id, "sneaky")

    assert _revisions(db_session, post.id) == []


def test_missing_post_raises_not_found(db_session, seed) -> None:
    with pytest.raises(NotFoundError):
        RevisionManager(db_session, context_for(seed.author)).autosave(999_999, "text")


def test_discard_removes_only_callers_draft(db_session, seed, make_post, editable) -> None:
    post = make_post("Discard", grants=editable)
    RevisionManager(db_session, context_for(seed.author)).autosave(post.id, "author draft")
    editor = RevisionManager(db_session, context_for(seed.editor))
    editor.autosave(post.id, "editor draft")

    assert editor.discard(post.id) is True
    assert editor.discard(post.id) is False
    assert [row.created_by for row in _revisions(db_session, post.id)] == [seed.author.id]


def test_word_diff_marks_changes() -> None:
    segments = word_diff("the quick brown fox", "the slow brown fox jumps")

    assert DiffSegment("delete", "quick") in segments
    assert DiffSegment("insert", "slow") in segments
    assert segments[-1] == DiffSegment("insert", " jumps")
    assert "".join(s.text for s in segments if s.op != "delete") == "the slow brown fox jumps"


def test_diff_handles_concurrent_editors(db_session, seed, make_post, editable) -> None:
    post = make_post("Shared page", "alpha beta gamma", grants=editable)
    RevisionManager(db_session, context_for(seed.author)).autosave(post.id, "alpha beta gamma delta")
    RevisionManager(db_session, context_for(seed.editor)).autosave(post.id, "alpha gamma")

    diffs = RevisionManager(db_session, context_for(seed.author)).diff(post.id)

    assert [d.editor_id for d in diffs] == [seed.author.id, seed.editor.id]
    author_diff, editor_diff = diffs
    assert DiffSegment("insert", " delta") in author_diff.segments
    assert not any(s.op == "delete" for s in author_diff.segments)
    assert DiffSegment("delete", "beta ") in editor_diff.segments
    assert "<del>beta </del>" in editor_diff.to_html()
    assert "<ins> delta</ins>" in author_diff.to_html()


def test_diff_for_single_editor(db_session, seed, make_post, editable) -> None:
    post = make_post("Filtered", "text", grants=editable)
    RevisionManager(db_session, context_for(seed.author)).autosave(post.id, "text a")
    RevisionManager(db_session, context_for(seed.editor)).autosave(post.id, "text b")

    diffs = RevisionManager(db_session, context_for(seed.author)).diff(post.id, seed.editor.id)

    assert [d.editor_id for d in diffs] == [seed.editor.id]


def test_diff_degrades_when_baseline_unreadable(db_session, seed, make_post) -> None:
    post = make_post("Corrupt", "fine")
    RevisionManager(db_session, context_for(seed.author)).autosave(post.id, "new draft")
    db_session.get(Post, post.id).content = "garbage-not-a-token"
    db_session.flush()

    (result,) = RevisionManager(db_session, context_for(seed.author)).diff(post.id)

    assert result.degraded
    assert result.segments == [DiffSegment("insert", "new draft")]


def test_history_lists_committed_revisions(db_session, seed, make_post) -> None:
    post = make_post("History")
    manager = RevisionManager(db_session, context_for(seed.author))
    manager.commit(post.id, "one")
    manager.autosave(post.id, "pending")

    history = manager.history(post.id)

    assert [entry["revision"] for entry in history] == [1]
    manager.commit(post.id, "two")
    assert [entry["revision"] for entry in manager.history(post.id)] == [2, 1]
