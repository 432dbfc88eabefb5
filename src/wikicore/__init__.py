"""Access-controlled content search and versioning engine for wiki posts."""

__version__ = "0.1.0"
