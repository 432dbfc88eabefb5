"""Dispatch of post content to the parser for its markup format.

The parsers themselves are supplied by the host application; this module only
models the set of formats and the single ``parse`` capability they share.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from wikicore.core.errors import ParserUnavailable


class ParserKind(str, Enum):
    """Markup dialects a post can be stored in."""

    WIKI = "wiki"
    WIKI_HTML = "htmlw"
    WIKI_CODE = "phpw"
    HTML = "html"
    CODE = "php"
    TEXT = "text"
    MARKDOWN = "markdown"

    @classmethod
    def from_constant(cls, constant: str) -> ParserKind:
        """Map a format constant (case-insensitive, ``md`` accepted) to a kind."""
        value = constant.strip().lower()
        if value == "md":
            return cls.MARKDOWN
        return cls(value)

    @property
    def permission_sensitive(self) -> bool:
        """Wiki dialects contain markup whose output depends on the viewer."""
        return self in (ParserKind.WIKI, ParserKind.WIKI_HTML, ParserKind.WIKI_CODE)


@dataclass(frozen=True)
class ParseContext:
    """Viewer identity handed to permission-sensitive parsers."""

    user_id: int
    is_admin: bool
    is_authenticated: bool
    post_id: int
    post_creator: int


class Parser(Protocol):
    """Anything that turns raw post text into renderable output."""

    def parse(self, text: str, context: ParseContext) -> str: ...


class TextParser:
    """Plain text: escaped and kept preformatted."""

    def parse(self, text: str, context: ParseContext) -> str:
        return f"<pre>{html.escape(text)}</pre>"


class HtmlParser:
    """Raw HTML is already renderable."""

    def parse(self, text: str, context: ParseContext) -> str:
        return text


class CodeParser:
    """Raw code is shown, never executed."""

    def parse(self, text: str, context: ParseContext) -> str:
        return f"<pre><code>{html.escape(text)}</code></pre>"


class ParserRegistry:
    """Maps each ``ParserKind`` to its parser."""

    def __init__(self, parsers: dict[ParserKind, Parser] | None = None) -> None:
        self._parsers: dict[ParserKind, Parser] = {
            ParserKind.TEXT: TextParser(),
            ParserKind.HTML: HtmlParser(),
            ParserKind.CODE: CodeParser(),
        }
        if parsers:
            self._parsers.update(parsers)

    def register(self, kind: ParserKind, parser: Parser) -> None:
        self._parsers[kind] = parser

    def parse(self, kind: ParserKind, text: str, context: ParseContext) -> str:
        """Parse ``text`` with the parser registered for ``kind``."""
        parser = self._parsers.get(kind)
        if parser is None:
            raise ParserUnavailable(f"No parser registered for format '{kind.value}'")
        return parser.parse(text, context)
