# src/wikicore/api/v1/endpoints/posts.py
"""Post editing endpoints: drafts, commits, diffs, clicks and deletion."""

from typing import Any

from fastapi import APIRouter, Query, Response, status

from wikicore.api.v1.dependencies import ContextDep, EditorContextDep, ReindexQueueDep, SessionDep
from wikicore.schemas.post import ClickResponse, PermissionSummaryResponse
from wikicore.schemas.revision import (
    CommitResponse,
    ContentUpdate,
    DiffSegmentResponse,
    DraftDiffResponse,
    DraftResponse,
)
from wikicore.services.posts import PostService
from wikicore.services.revisions import RevisionManager

router = APIRouter(prefix="/posts", tags=["posts"])


@router.get("/{post_id}/permissions", response_model=PermissionSummaryResponse)
def get_permissions(
    post_id: int,
    db: SessionDep,
    context: ContextDep,
    uuid: str | None = Query(None, description="Share UUID, canonical or compact form"),
) -> PermissionSummaryResponse:
    """Return the per-role read/write summary of a post the caller may read."""
    service = PostService(db, context)
    post = service.get_readable(post_id, uuid)
    return PermissionSummaryResponse(
        post_id=post.id,
        shared=post.shared,
        roles=service.permission_summary(post_id),
    )


@router.post("/{post_id}/autosave", response_model=DraftResponse)
def autosave(
    post_id: int,
    payload: ContentUpdate,
    db: SessionDep,
    context: EditorContextDep,
) -> Any:
    """Store the caller's in-progress draft without publishing it."""
    return RevisionManager(db, context).autosave(post_id, payload.content)


@router.delete("/{post_id}/draft", status_code=status.HTTP_204_NO_CONTENT)
def discard_draft(post_id: int, db: SessionDep, context: EditorContextDep) -> Response:
    RevisionManager(db, context).discard(post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{post_id}/commit", response_model=CommitResponse)
def commit(
    post_id: int,
    payload: ContentUpdate,
    db: SessionDep,
    context: EditorContextDep,
    reindex_queue: ReindexQueueDep,
) -> Any:
    """Publish content as the next committed revision of the post."""
    manager = RevisionManager(db, context, reindex_queue=reindex_queue)
    return manager.commit(post_id, payload.content)


@router.get("/{post_id}/diff", response_model=list[DraftDiffResponse])
def diff(
    post_id: int,
    db: SessionDep,
    context: EditorContextDep,
    editor_id: int | None = Query(None, description="Only diff this editor's draft"),
) -> list[DraftDiffResponse]:
    """Diff every open draft of the post against its committed content."""
    return [
        DraftDiffResponse(
            revision_id=item.revision_id,
            editor_id=item.editor_id,
            saved_at=item.saved_at,
            degraded=item.degraded,
            segments=[DiffSegmentResponse(op=seg.op, text=seg.text) for seg in item.segments],
            html=item.to_html(),
        )
        for item in RevisionManager(db, context).diff(post_id, editor_id)
    ]


@router.get("/{post_id}/revisions")
def history(post_id: int, db: SessionDep, context: EditorContextDep) -> list[dict[str, Any]]:
    """List committed revisions, newest first."""
    return RevisionManager(db, context).history(post_id)


@router.post("/{post_id}/clicks", response_model=ClickResponse)
def increment_clicks(post_id: int, db: SessionDep, context: ContextDep) -> ClickResponse:
    service = PostService(db, context)
    service.increment_clicks(post_id)
    post = service.get(post_id)
    db.refresh(post)
    return ClickResponse(post_id=post.id, clicks=post.clicks)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(
    post_id: int,
    db: SessionDep,
    context: EditorContextDep,
    permanent: bool = Query(False, description="Remove the post and all rows it owns"),
) -> Response:
    """Soft delete a post, or remove it entirely when ``permanent`` is set."""
    service = PostService(db, context)
    if permanent:
        service.delete_permanently(post_id)
    else:
        service.soft_delete(post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
