"""Tokenizer and stemmer used by the index and by keyword queries."""

from __future__ import annotations

import re
from collections import Counter
from functools import lru_cache
from typing import Protocol

import snowballstemmer

from wikicore.core.settings import settings

_WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)
MIN_WORD_LENGTH = 2

STOP_WORDS = frozenset(
    {
        "a", "about", "after", "all", "also", "an", "and", "any", "are", "as", "at",
        "be", "been", "but", "by", "can", "could", "did", "do", "does", "for", "from",
        "had", "has", "have", "he", "her", "his", "how", "i", "if", "in", "into", "is",
        "it", "its", "just", "me", "my", "no", "not", "of", "on", "one", "or", "our",
        "she", "so", "some", "than", "that", "the", "their", "them", "then", "there",
        "these", "they", "this", "to", "too", "up", "us", "was", "we", "were", "what",
        "when", "where", "which", "who", "will", "with", "would", "you", "your",
    }
)


class Stemmer(Protocol):
    """Contract: text in, ordered de-duplicated normalised terms out."""

    def stem(self, text: str) -> list[str]: ...

    def stem_counts(self, text: str) -> Counter[str]: ...


class SnowballTextStemmer:
    """Lower-cases, drops stop words and reduces words to Snowball stems."""

    def __init__(self, language: str = "english") -> None:
        self._stemmer = snowballstemmer.stemmer(language)

    def tokenize(self, text: str) -> list[str]:
        """Return lower-cased words that are long enough and not stop words."""
        return [
            word
            for word in _WORD_RE.findall(text.lower())
            if len(word) >= MIN_WORD_LENGTH and word not in STOP_WORDS
        ]

    def stem_words(self, text: str) -> list[str]:
        """Return one stem per token, duplicates included."""
        return self._stemmer.stemWords(self.tokenize(text))

    def stem(self, text: str) -> list[str]:
        """Return stems in first-seen order with duplicates collapsed."""
        return list(dict.fromkeys(self.stem_words(text)))

    def stem_counts(self, text: str) -> Counter[str]:
        """Return how often each stem occurs in the text."""
        return Counter(self.stem_words(text))


@lru_cache(maxsize=1)
def get_stemmer() -> SnowballTextStemmer:
    """Return the shared stemmer for the configured language."""
    return SnowballTextStemmer(settings.stemmer_language)
