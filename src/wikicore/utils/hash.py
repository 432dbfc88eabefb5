# src/wikicore/utils/hash.py
"""BLAKE3 helpers for one-way index terms and key derivation."""

from __future__ import annotations

from blake3 import blake3

TERM_DIGEST_HEX_LENGTH = 64


def blake3_digest(data: bytes) -> bytes:
    """Return the 32 byte digest of the supplied data."""
    return blake3(data).digest()


def blake3_hexdigest(data: bytes) -> str:
    """Return the hexadecimal digest of the supplied data."""
    return blake3(data).hexdigest()


def term_digest(term: str) -> str:
    """Return the stored form of an index term when encryption is enabled.

    Query terms must go through the same function so lookups compare equal.
    """
    return blake3_hexdigest(term.encode("utf-8"))
