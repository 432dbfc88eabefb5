# src/wikicore/main.py
"""Main entry point for the wiki engine HTTP adapter."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from wikicore import __version__
from wikicore.api.v1 import posts_router, search_router
from wikicore.core.errors import (
    ConflictError,
    DeniedError,
    EncryptionFailure,
    NotFoundError,
    ParserUnavailable,
    ValidationFailure,
    WikiError,
)
from wikicore.core.settings import settings
from wikicore.db.session import create_tables
from wikicore.services.reindex_worker import get_reindex_worker

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=f"{settings.app_name} API",
    description="Permission-aware search and revision engine for wiki posts",
    version=__version__,
)

# Signed cookie session; remembers validated share UUIDs between requests
app.add_middleware(SessionMiddleware, secret_key=settings.secret_key, same_site="lax")

# Include API routers
app.include_router(search_router, prefix="/api/v1")
app.include_router(posts_router, prefix="/api/v1")

ERROR_STATUS: dict[type[WikiError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    DeniedError: status.HTTP_403_FORBIDDEN,
    ConflictError: status.HTTP_409_CONFLICT,
    ValidationFailure: status.HTTP_422_UNPROCESSABLE_ENTITY,
    EncryptionFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ParserUnavailable: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@app.exception_handler(WikiError)
async def wiki_error_handler(request: Request, exc: WikiError) -> JSONResponse:
    code = next(
        (value for kind, value in ERROR_STATUS.items() if isinstance(exc, kind)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        # Never echo details of stored content back to the client.
        return JSONResponse(status_code=code, content={"detail": "Internal server error"})
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()
    worker = get_reindex_worker()
    # Pick up posts whose reindex was lost before the last shutdown.
    try:
        queued = worker.sweep_stale()
    except SQLAlchemyError:
        logger.warning("Stale index sweep failed at startup", exc_info=True)
    else:
        logger.info("Queued %d stale posts for reindexing", queued)
    await worker.start()
    app.state.reindex_worker = worker


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker = getattr(app.state, "reindex_worker", None)
    if worker:
        await worker.stop()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("wikicore.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
