"""Keyword and summary derivation for chunk and document text."""

from __future__ import annotations

from collections import Counter
import re
from typing import Iterable, Iterator

STOPWORDS: frozenset[str] = frozenset(
    {
        "de", "la", "que", "el", "en", "y", "a", "los", "del", "se", "las", "por", "un", "para",
        "con", "no", "una", "su", "al", "lo", "como", "más", "pero", "sus", "le", "ya", "o",
        "fue", "ha", "sí", "porque", "entre", "cuando", "muy", "sin", "sobre", "también", "me",
        "hasta", "hay", "donde", "quien", "desde", "todo", "nos", "durante", "todos", "uno",
        "les", "ni", "contra", "otros", "ese", "eso", "ante", "ellos", "e", "esto", "mí",
        "antes", "algunos", "qué", "unos", "yo", "otro", "otras", "otra", "él",
    }
)

# Letters only (accents included), no digits or underscores.
TOKEN_RE = re.compile(r"[^\W\d_]{4,}")
SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+")


def tokenize(text: str, stopwords: Iterable[str] = STOPWORDS) -> Iterator[str]:
    """Yield lower-cased keyword candidates from ``text``."""

    stop = stopwords if isinstance(stopwords, (set, frozenset)) else frozenset(stopwords)
    for match in TOKEN_RE.finditer(text or ""):
        token = match.group(0).lower()
        if token not in stop:
            yield token


class KeywordExtractor:
    """Rank tokens by frequency, ties kept in first-seen order."""

    def __init__(self, stopwords: Iterable[str] = STOPWORDS) -> None:
        self.stopwords = frozenset(stopwords)

    def extract_top(self, text: str, top_n: int = 12) -> list[str]:
        if top_n <= 0:
            return []
        counts = Counter(tokenize(text, self.stopwords))
        return [token for token, _ in counts.most_common(top_n)]


class TextSummarizer:
    """Naive extractive summary: the leading sentences of the text."""

    def summarize(self, text: str, max_sentences: int = 3) -> str:
        if not text or not text.strip() or max_sentences <= 0:
            return ""
        sentences = [part for part in SENTENCE_BOUNDARY_RE.split(text.strip()) if part]
        return " ".join(sentences[:max_sentences])
