"""UUID helpers for unlisted post sharing."""

from __future__ import annotations

import uuid

COMPACT_UUID_LENGTH = 32


def new_post_uuid() -> str:
    """Return a fresh canonical (dashed, lowercase) UUID string."""
    return str(uuid.uuid4())


def canonical_uuid(token: str) -> str | None:
    """Expand a compact 32 character token and normalise to canonical form.

    Returns None when the token is not a UUID in either form.
    """
    cleaned = token.strip()
    if len(cleaned) == COMPACT_UUID_LENGTH:
        cleaned = "-".join(
            (cleaned[:8], cleaned[8:12], cleaned[12:16], cleaned[16:20], cleaned[20:])
        )
    try:
        return str(uuid.UUID(cleaned)).lower()
    except ValueError:
        return None
