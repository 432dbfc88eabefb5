"""Shared API dependencies for caller identity and services."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from wikicore.core.security import InvalidTokenError, caller_from_token
from wikicore.db.session import get_db
from wikicore.services.permissions import Caller, RequestContext
from wikicore.services.reindex_worker import ReindexWorker, get_reindex_worker

# HTTP Bearer scheme; anonymous requests are allowed where the route permits
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]

ANONYMOUS = Caller(user_id=0, is_admin=False, is_authenticated=False)


def get_caller(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Caller:
    """Return the caller named by the bearer token, or the anonymous caller.

    Raises:
        HTTPException: If a token is present but invalid.
    """
    if credentials is None:
        return ANONYMOUS
    try:
        return caller_from_token(credentials.credentials)
    except InvalidTokenError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err


def get_authenticated_caller(caller: Annotated[Caller, Depends(get_caller)]) -> Caller:
    """Like ``get_caller`` but rejects anonymous requests."""
    if not caller.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return caller


def get_request_context(
    request: Request,
    caller: Annotated[Caller, Depends(get_caller)],
) -> RequestContext:
    """Build a fresh context per request so permission memos never outlive it.

    Share UUIDs validated earlier live in the signed session cookie.
    """
    return RequestContext(caller=caller, session=request.session)


def get_editor_context(
    request: Request,
    caller: Annotated[Caller, Depends(get_authenticated_caller)],
) -> RequestContext:
    return RequestContext(caller=caller, session=request.session)


def get_reindex_queue() -> ReindexWorker:
    """Return the background reindexer used for deferred and retried reindexing."""
    return get_reindex_worker()


ContextDep = Annotated[RequestContext, Depends(get_request_context)]
EditorContextDep = Annotated[RequestContext, Depends(get_editor_context)]
ReindexQueueDep = Annotated[ReindexWorker, Depends(get_reindex_queue)]
