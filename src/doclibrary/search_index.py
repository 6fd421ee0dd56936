"""Chunk-level full-text index backed by SQLite FTS5.

One index file per deployment. Writers (rebuild, upsert, delete) are
serialized by a per-file lock plus SQLite's own write lock; every search
opens its own connection and, thanks to WAL mode, reads the last committed
state without waiting on a writer.
"""

from __future__ import annotations

from contextlib import closing, contextmanager
from datetime import datetime
import logging
from pathlib import Path
import re
import sqlite3
import threading
from typing import Iterable, Iterator

from .errors import IndexUnavailable, QuerySyntaxInvalid
from .models import PLACEHOLDER_THUMB_URL, DocumentRecord, IndexEntry, SearchResult
from .storage import JsonRecordStore
from .text_analysis import STOPWORDS

LOGGER = logging.getLogger(__name__)

TABLE = "entries"
FIELD_WEIGHTS = {"title": 2.2, "keywords": 1.5, "text": 1.0}
ELLIPSIS = "…"

_COLUMNS = (
    "title",
    "keywords",
    "text",
    "doc_key",
    "chunk_id",
    "page_start",
    "page_end",
    "pdf_url",
    "json_url",
    "thumb_url",
    "category",
    "doc_type",
    "date",
)
_INDEXED = tuple(FIELD_WEIGHTS)
_TABLE_DEFINITION = (
    f"{TABLE} USING fts5("
    + ", ".join(name if name in _INDEXED else f"{name} UNINDEXED" for name in _COLUMNS)
    + ", tokenize = 'unicode61 remove_diacritics 2')"
)
_INSERT = f"INSERT INTO {TABLE} ({', '.join(_COLUMNS)}) VALUES ({', '.join('?' for _ in _COLUMNS)})"
_SEARCH = f"""
    SELECT title, pdf_url, json_url, thumb_url, category, doc_type,
           page_start, page_end, date, text,
           -bm25({TABLE}, {', '.join(str(weight) for weight in FIELD_WEIGHTS.values())}) AS score
      FROM {TABLE}
     WHERE {TABLE} MATCH ?
  ORDER BY score DESC
     LIMIT ?
"""

_QUERY_TOKEN_RE = re.compile(r'"[^"]*"?|[()]|[^\s()"]+')
_WORD_RE = re.compile(r"[^\W_]+")
_EXCERPT_TERM_RE = re.compile(r"[^\W_]{3,}")
_OPERATORS = frozenset({"AND", "OR", "NOT"})
_SYNTAX_MARKERS = ("fts5", "syntax error", "unterminated string", "no such column", "unknown special query")

_writer_locks: dict[Path, threading.Lock] = {}
_writer_locks_guard = threading.Lock()


def _writer_lock_for(path: Path) -> threading.Lock:
    with _writer_locks_guard:
        return _writer_locks.setdefault(path, threading.Lock())


class SearchIndex:
    """Build, update and query the chunk index."""

    def __init__(
        self,
        index_path: Path,
        store: JsonRecordStore,
        stopwords: Iterable[str] = STOPWORDS,
        default_limit: int = 20,
        excerpt_chars: int = 200,
    ) -> None:
        self.index_path = index_path.resolve()
        self._store = store
        self._stopwords = frozenset(stopwords)
        self.default_limit = default_limit
        self.excerpt_chars = excerpt_chars
        self._writer_lock = _writer_lock_for(self.index_path)

    # ------------------------------------------------------------------ writers

    def rebuild(self) -> int:
        """Drop the index and re-add every persisted record.

        Records that fail to parse are skipped by the store.

        Returns:
            Number of index entries written.
        """

        with self._write_transaction() as conn:
            conn.execute(f"DROP TABLE IF EXISTS {TABLE}")
            conn.execute(f"CREATE VIRTUAL TABLE {_TABLE_DEFINITION}")
            total = 0
            documents = 0
            for stored in self._store.iter_records():
                total += self._add(conn, stored.record, stored.key, stored.json_url)
                documents += 1
        LOGGER.info("Rebuilt index %s: %s document(s), %s entr(ies)", self.index_path, documents, total)
        return total

    def upsert(self, record: DocumentRecord, json_url: str | None = None, doc_key: str | None = None) -> int:
        """Replace every entry of ``doc_key`` with the chunks of ``record``.

        ``doc_key`` defaults to the stem of ``json_url``, then to the title.

        Returns:
            Number of entries added.
        """

        key = doc_key or (Path(json_url).stem if json_url else "") or record.title or record.id
        json_url = json_url or self._store.url_for(key)
        with self._write_transaction() as conn:
            conn.execute(f"CREATE VIRTUAL TABLE IF NOT EXISTS {_TABLE_DEFINITION}")
            removed = conn.execute(f"DELETE FROM {TABLE} WHERE doc_key = ?", (key,)).rowcount
            added = self._add(conn, record, key, json_url)
        LOGGER.info("Upserted %s: removed %s, added %s entr(ies)", key, removed, added)
        return added

    def delete(self, doc_key: str) -> int:
        """Remove every entry of ``doc_key``; returns how many were removed."""

        if not self.exists():
            return 0
        with self._write_transaction() as conn:
            removed = conn.execute(f"DELETE FROM {TABLE} WHERE doc_key = ?", (doc_key,)).rowcount
        LOGGER.info("Removed %s entr(ies) for %s", removed, doc_key)
        return removed

    # ------------------------------------------------------------------ readers

    def exists(self) -> bool:
        """Return True once the index file holds the entries table."""

        if not self.index_path.is_file():
            return False
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                    (TABLE,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise IndexUnavailable(f"Index {self.index_path} cannot be opened: {exc}") from exc
        return row is not None

    def count(self, doc_key: str | None = None) -> int:
        """Number of indexed entries, optionally for one document key."""

        if not self.exists():
            return 0
        with closing(self._connect()) as conn:
            if doc_key is None:
                row = conn.execute(f"SELECT count(*) FROM {TABLE}").fetchone()
            else:
                row = conn.execute(f"SELECT count(*) FROM {TABLE} WHERE doc_key = ?", (doc_key,)).fetchone()
        return int(row[0])

    def search(self, query: str, limit: int | None = None) -> list[SearchResult]:
        """Run a free-text query and return ranked hits with excerpts.

        Raises:
            QuerySyntaxInvalid: If the query fails even as a literal phrase.
            IndexUnavailable: If the index cannot be read.
        """

        query = (query or "").strip()
        if not query:
            return []
        limit = limit if limit and limit > 0 else self.default_limit

        if not self.exists():
            LOGGER.info("Index %s missing; rebuilding before searching.", self.index_path)
            self.rebuild()
            if not self.exists():
                return []

        expression = to_match_expression(query, self._stopwords)
        if not expression:
            return []

        try:
            rows = self._query(expression, limit)
        except _MatchSyntaxError:
            LOGGER.info("Query %r rejected by the parser; retrying as a literal phrase.", query)
            try:
                rows = self._query(escape_phrase(query), limit)
            except _MatchSyntaxError as exc:
                raise QuerySyntaxInvalid(f"Query {query!r} could not be parsed: {exc}") from exc

        return [self._to_result(row, query) for row in rows]

    # ---------------------------------------------------------------- internals

    def _query(self, expression: str, limit: int) -> list[sqlite3.Row]:
        try:
            with closing(self._connect()) as conn:
                return conn.execute(_SEARCH, (expression, limit)).fetchall()
        except sqlite3.OperationalError as exc:
            message = str(exc).lower()
            if any(marker in message for marker in _SYNTAX_MARKERS):
                raise _MatchSyntaxError(str(exc)) from exc
            raise IndexUnavailable(f"Index query failed: {exc}") from exc
        except sqlite3.Error as exc:
            raise IndexUnavailable(f"Index query failed: {exc}") from exc

    def _to_result(self, row: sqlite3.Row, query: str) -> SearchResult:
        text = row["text"] or ""
        return SearchResult(
            title=row["title"] or "",
            pdf_url=row["pdf_url"] or "",
            json_url=row["json_url"] or "",
            thumb_url=row["thumb_url"] or PLACEHOLDER_THUMB_URL,
            category=row["category"] or "",
            doc_type=row["doc_type"] or "",
            page_start=_to_int(row["page_start"]),
            page_end=_to_int(row["page_end"]),
            score=max(0.0, float(row["score"])),
            date=_to_datetime(row["date"]),
            excerpt=build_excerpt(text, query, self.excerpt_chars) if text else "",
        )

    def _add(self, conn: sqlite3.Connection, record: DocumentRecord, doc_key: str, json_url: str) -> int:
        entries = IndexEntry.from_record(record, doc_key, json_url)
        conn.executemany(
            _INSERT,
            [
                (
                    entry.title,
                    entry.keywords,
                    entry.text,
                    entry.doc_key,
                    entry.chunk_id,
                    entry.page_start,
                    entry.page_end,
                    entry.pdf_url,
                    entry.json_url,
                    entry.thumb_url,
                    entry.category,
                    entry.doc_type,
                    entry.date,
                )
                for entry in entries
            ],
        )
        return len(entries)

    @contextmanager
    def _write_transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the writer lock and one IMMEDIATE transaction."""

        with self._writer_lock:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                conn = self._connect()
            except sqlite3.Error as exc:
                raise IndexUnavailable(f"Index {self.index_path} cannot be opened: {exc}") from exc
            try:
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                raise IndexUnavailable(f"Index write failed: {exc}") from exc
            finally:
                conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.index_path, timeout=30.0, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn


class _MatchSyntaxError(Exception):
    """The MATCH expression was rejected by FTS5."""


def to_match_expression(query: str, stopwords: Iterable[str] = STOPWORDS) -> str:
    """Translate free text into an OR-combined FTS5 MATCH expression.

    Bare words become quoted terms joined by OR; quoted phrases, AND/OR,
    parentheses, ``field:term`` for title/keywords/text and a trailing ``*``
    (prefix) are honoured. Single stopwords are dropped. Unbalanced quotes
    are passed through so the engine rejects them.

    Terms marked with ``NOT`` or a leading ``-`` are gathered and excluded
    from the rest, as ``(<positive>) NOT (<a> OR <b>)``. A query with only
    excluded terms yields an empty expression.
    """

    stop = frozenset(stopwords)
    positive: list[str] = []
    negated: list[str] = []
    negate_next = False
    for raw in _QUERY_TOKEN_RE.findall(query):
        if raw == "NOT" or raw == "-":
            negate_next = True
            continue
        if raw in _OPERATORS or raw in ("(", ")"):
            # Excluding a whole group is not supported; the group stays positive.
            negate_next = False
            positive.append(raw)
            continue

        negate = negate_next or raw.startswith("-")
        negate_next = False
        term = _term(raw, stop)
        if term is None:
            continue
        (negated if negate else positive).append(term)

    expression = _join_operands(positive)
    if not expression:
        return ""
    if not negated:
        return expression
    return f"({expression}) NOT ({' OR '.join(negated)})"


def escape_phrase(query: str) -> str:
    """Quote ``query`` as a single FTS5 phrase."""

    return '"' + query.replace('"', '""') + '"'


def query_terms(query: str) -> list[str]:
    """Lower-cased terms of three or more letters/digits, first occurrence order."""

    return list(dict.fromkeys(_EXCERPT_TERM_RE.findall((query or "").lower())))


def build_excerpt(text: str, query: str, max_len: int = 200) -> str:
    """Cut a window of ``text`` around the first query term found.

    The window starts a third of ``max_len`` before the match. A ``…`` marks
    each clipped side and the result, markers included, is at most
    ``max_len`` characters. Without a match the window starts at the text
    start.
    """

    if not text or not text.strip() or max_len <= 0:
        return ""

    position = 0
    for term in query_terms(query):
        match = re.search(re.escape(term), text, re.IGNORECASE)
        if match:
            position = match.start()
            break

    start = max(0, position - max_len // 3)
    end = min(len(text), start + max_len)
    head = ELLIPSIS if start > 0 else ""
    tail = ELLIPSIS if end < len(text) else ""
    if (end - start) + len(head) + len(tail) > max_len:
        tail = ELLIPSIS
        end = max(start, start + max_len - len(head) - len(tail))

    body = text[start:end].strip()
    return (head + body + tail).replace("\r", " ").replace("\n", " ")


def _term(raw: str, stop: frozenset[str]) -> str | None:
    if raw.startswith('"'):
        return raw
    raw = raw.lstrip("+-")
    column = None
    field_name, sep, rest = raw.partition(":")
    if sep and field_name.lower() in FIELD_WEIGHTS:
        column, raw = field_name.lower(), rest
    words = _WORD_RE.findall(raw.lower())
    if not words or (len(words) == 1 and words[0] in stop):
        return None

    term = '"' + " ".join(words) + '"' + ("*" if raw.endswith("*") else "")
    if column:
        term = f"{column} : {term}"
    return term


def _join_operands(parts: list[str]) -> str:
    """Drop dangling operators and empty groups, OR-joining adjacent operands."""

    expression: list[str] = []
    for part in parts:
        if part in _OPERATORS:
            if expression and _ends_operand(expression[-1]):
                expression.append(part)
            continue
        if part == ")":
            while expression and expression[-1] in _OPERATORS:
                expression.pop()
            if expression and expression[-1] == "(":
                expression.pop()
                continue
        elif expression and _ends_operand(expression[-1]) and _starts_operand(part):
            expression.append("OR")
        expression.append(part)

    while expression and expression[-1] in _OPERATORS:
        expression.pop()
    return " ".join(expression)


def _ends_operand(part: str) -> bool:
    return part not in _OPERATORS and part != "("


def _starts_operand(part: str) -> bool:
    return part not in _OPERATORS and part != ")"


def _to_int(value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0


def _to_datetime(value: object) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None
