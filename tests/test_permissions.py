# mypy: ignore-errors
# tests/test_permissions.py
"""Tests for per-post permission resolution and UUID sharing."""

import pytest

from wikicore.core.errors import DeniedError
from wikicore.models import PostPermission
from wikicore.services.permissions import (
    ALL_PERMISSIONS,
    SESSION_UUIDS_KEY,
    PermissionResolver,
)
from tests.helpers import context_for


def test_post_without_grants_only_admin_and_creator(db_session, seed, make_post) -> None:
    """A post with no PostPermission rows is private to the admin and its creator."""
    post = make_post("Private notes", "secret plans")

    assert PermissionResolver(db_session, context_for(seed.admin, admin=True)).has_permission(post, "read")
    assert PermissionResolver(db_session, context_for(seed.author)).has_permission(post, "write")
    for user in (seed.reader, seed.editor, seed.outsider):
        resolver = PermissionResolver(db_session, context_for(user))
        assert resolver.has_permission(post, "read") is False
        assert resolver.has_permission(post, "write") is False


def test_admin_and_creator_get_wildcard(db_session, seed, make_post) -> None:
    post = make_post("Owned")

    assert PermissionResolver(db_session, context_for(seed.author)).resolve(post) is ALL_PERMISSIONS
    assert PermissionResolver(db_session, context_for(seed.admin, admin=True)).resolve(post) is ALL_PERMISSIONS


def test_role_grants_are_resolved_case_insensitively(db_session, seed, make_post) -> None:
    """Grants flow through role membership; constants compare without case."""
    post = make_post(
        "Team page",
        grants={seed.readers_role: [seed.read], seed.editors_role: [seed.write]},
    )

    reader = PermissionResolver(db_session, context_for(seed.reader))
    assert reader.resolve(post) == frozenset({"read"})
    assert reader.has_permission(post, "READ")
    assert not reader.has_permission(post, "write")

    editor = PermissionResolver(db_session, context_for(seed.editor))
    assert editor.resolve(post) == frozenset({"read", "write"})

    outsider = PermissionResolver(db_session, context_for(seed.outsider))
    assert outsider.resolve(post) == frozenset()


def test_require_raises_denied(db_session, seed, make_post) -> None:
    post = make_post("Read only", grants={seed.readers_role: [seed.read]})
    resolver = PermissionResolver(db_session, context_for(seed.reader))

    resolver.require(post, "read")
    with pytest.raises(DeniedError) as excinfo:
        resolver.require(post, "write")
    assert excinfo.value.post_id == post.id
    assert excinfo.value.permission == "write"


def test_memo_lives_on_request_context_only(db_session, seed, make_post) -> None:
    """A resolved set is reused within one context and never stored on the post."""
    post = make_post("Memo")
    context = context_for(seed.reader)
    resolver = PermissionResolver(db_session, context)

    assert resolver.has_permission(post, "read") is False

    db_session.add(
        PostPermission(post_id=post.id, role_id=seed.readers_role.id, permission_id=seed.read.id)
    )
    db_session.flush()

    # Same request: memoised answer.
    assert PermissionResolver(db_session, context).has_permission(post, "read") is False
    # Next request: fresh resolution.
    assert PermissionResolver(db_session, context_for(seed.reader)).has_permission(post, "read") is True
    assert not hasattr(post, "_permissions")
    assert post.id in context._permissions


def test_uuid_grants_read_in_canonical_and_compact_form(db_session, seed, make_post) -> None:
    post = make_post("Shared doc", shared=True)
    compact = post.uuid.replace("-", "")

    assert PermissionResolver(db_session, context_for(seed.outsider)).uuid_permission(post, post.uuid)
    assert PermissionResolver(db_session, context_for(seed.outsider)).uuid_permission(post, compact)
    assert PermissionResolver(db_session, context_for(seed.outsider)).uuid_permission(
        post, post.uuid.upper()
    )


def test_uuid_rejects_other_values(db_session, seed, make_post) -> None:
    post = make_post("Shared doc", shared=True)
    other = make_post("Other doc", shared=True)
    resolver = PermissionResolver(db_session, context_for(seed.outsider))

    assert resolver.uuid_permission(post, other.uuid) is False
    assert resolver.uuid_permission(post, "not-a-uuid") is False
    assert resolver.uuid_permission(post) is False


def test_uuid_ignored_when_post_not_shared(db_session, seed, make_post) -> None:
    post = make_post("Unshared doc", shared=False)
    resolver = PermissionResolver(db_session, context_for(seed.outsider))

    assert resolver.uuid_permission(post, post.uuid) is False


def test_validated_uuid_is_remembered_in_session(db_session, seed, make_post) -> None:
    post = make_post("Shared doc", shared=True)
    http_session = {}

    first = PermissionResolver(db_session, context_for(seed.outsider, session=http_session))
    assert first.uuid_permission(post, post.uuid)
    assert http_session[SESSION_UUIDS_KEY] == [post.uuid]

    # A later request from the same browser session needs no token.
    later = PermissionResolver(db_session, context_for(seed.outsider, session=http_session))
    assert later.uuid_permission(post)
    # A wrong token still denies.
    assert later.uuid_permission(post, "0" * 32) is False

    stranger = PermissionResolver(db_session, context_for(seed.outsider))
    assert stranger.uuid_permission(post) is False


def test_direct_read_grant_needs_no_uuid(db_session, seed, make_post) -> None:
    post = make_post("Readable", grants={seed.readers_role: [seed.read]})

    assert PermissionResolver(db_session, context_for(seed.reader)).uuid_permission(post)


def test_visibility_clause_is_none_for_admin(db_session, seed) -> None:
    assert PermissionResolver(db_session, context_for(seed.admin, admin=True)).visibility_clause() is None
    assert PermissionResolver(db_session, context_for(seed.reader)).visibility_clause() is not None
