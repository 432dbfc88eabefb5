"""Service layer for permissions, indexing, search and revisions."""
