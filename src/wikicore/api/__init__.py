"""HTTP adapter for the wiki engine."""
