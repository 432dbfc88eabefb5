"""Teaser extraction for post listings.

The rule is deterministic and operates on committed plaintext:

1. Remove blocks that must never leak into a listing (auth-only, private,
   raw html, raw code and info callouts), contents included.
2. If the author marked a ``<teaser>...</teaser>`` region, the teaser is
   exactly the text between the tags, unparsed.
3. Otherwise strip markup punctuation and truncate to ``teaser_length``,
   appending ``...`` when the stripped text reaches the limit.
"""

from __future__ import annotations

import re

from wikicore.core.settings import settings

TEASER_OPEN = "<teaser>"
TEASER_CLOSE = "</teaser>"
ELLIPSIS = "..."

HIDDEN_BLOCK_TAGS = ("auth", "priv", "html", "php", "phpw", "info", "infol")

_HIDDEN_BLOCKS = [
    re.compile(rf"<{tag}>.*?</{tag}>", re.IGNORECASE | re.DOTALL | re.MULTILINE)
    for tag in HIDDEN_BLOCK_TAGS
]

_HTML_TAG = re.compile(r"<[^>]*>")

# Applied in order; each pattern is removed outright.
_MARKUP_PATTERNS = [
    re.compile(r"\[\[(?:.|\n)*?\]\]"),  # [[links]]
    re.compile(r"\[(?:.|\n)*?\]"),  # [links]
    re.compile(r"\(\((?:.|\n)*?\)\)"),  # ((footnotes))
    re.compile(r"\+(?:.|\n)*?\n"),  # +headings
    re.compile(r"\*\*|'''|__|//|\|\|~|\|\||##.*?\|"),  # emphasis, table cells, colours
    re.compile(r"\* "),
    re.compile(r"##"),
    re.compile(r"# "),
    re.compile(r"``"),
    re.compile(r"\{\{"),
    re.compile(r"\}\}"),
    re.compile(r" \\"),
    re.compile(r"@@"),
    re.compile(r"---"),
    re.compile(r"----"),
    re.compile(r"\+\+\+"),
]


def strip_hidden_blocks(content: str) -> str:
    """Remove every non-visible block together with its contents."""
    for pattern in _HIDDEN_BLOCKS:
        content = pattern.sub("", content)
    return content


def strip_markup(content: str) -> str:
    """Remove HTML tags and wiki punctuation, leaving readable text."""
    content = _HTML_TAG.sub("", content)
    for pattern in _MARKUP_PATTERNS:
        content = pattern.sub("", content)
    return content.replace("\r\n", " ")


def extract_teaser(content: str, max_length: int | None = None) -> str:
    """Return the plaintext teaser for committed ``content``."""
    limit = settings.teaser_length if max_length is None else max_length
    data = strip_hidden_blocks(content)

    lowered = data.lower()
    start = lowered.find(TEASER_OPEN)
    end = lowered.find(TEASER_CLOSE)
    if (start > 0 and end > 0) or data.startswith(TEASER_OPEN):
        begin = start + len(TEASER_OPEN)
        if end < begin:
            # Opening tag without a closing one: everything after it.
            return data[begin:]
        return data[begin:end]

    data = strip_markup(data)
    if len(data) >= limit:
        data = data[:limit].strip() + ELLIPSIS
    return data
