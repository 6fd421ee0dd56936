"""Shared dataclasses and the persisted record wire format."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from .errors import RecordCorrupt

JsonDict = dict[str, Any]

SCHEMA_VERSION = 1
PLACEHOLDER_THUMB_URL = "/img/placeholder.svg"


@dataclass(slots=True)
class Chunk:
    """A page-bounded slice of a document's text."""

    chunk_id: str
    page_start: int
    page_end: int
    text: str
    keywords: list[str] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> JsonDict:
        return {
            "chunkId": self.chunk_id,
            "pageStart": self.page_start,
            "pageEnd": self.page_end,
            "text": self.text,
            "keywords": list(self.keywords),
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> Chunk:
        if not isinstance(payload, dict):
            raise RecordCorrupt("Chunk entry is not an object.")
        return cls(
            chunk_id=_str(payload, "chunkId", required=True),
            page_start=_int(payload, "pageStart"),
            page_end=_int(payload, "pageEnd"),
            text=_str(payload, "text"),
            keywords=_str_list(payload, "keywords"),
            summary=_str(payload, "summary"),
        )


@dataclass(slots=True)
class DocumentMeta:
    """Metadata detected while ingesting a document."""

    detected_date: datetime | None = None
    sections: list[str] = field(default_factory=list)

    def to_dict(self) -> JsonDict:
        return {
            "detectedDate": self.detected_date.isoformat() if self.detected_date else None,
            "sections": list(self.sections),
        }

    @classmethod
    def from_dict(cls, payload: Any) -> DocumentMeta:
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise RecordCorrupt("meta is not an object.")
        raw_date = payload.get("detectedDate")
        detected: datetime | None = None
        if raw_date:
            if not isinstance(raw_date, str):
                raise RecordCorrupt("meta.detectedDate is not a string.")
            try:
                detected = datetime.fromisoformat(raw_date)
            except ValueError as exc:
                raise RecordCorrupt(f"meta.detectedDate is not ISO-8601: {raw_date!r}") from exc
        return cls(detected_date=detected, sections=_str_list(payload, "sections"))


@dataclass(slots=True)
class DocumentRecord:
    """One ingested PDF, as persisted under the data area."""

    title: str
    source: str
    pages: int
    chunks: list[Chunk] = field(default_factory=list)
    global_keywords: list[str] = field(default_factory=list)
    global_summary: str = ""
    meta: DocumentMeta = field(default_factory=DocumentMeta)
    category: str = ""
    doc_type: str = ""
    thumb_url: str = PLACEHOLDER_THUMB_URL
    id: str = field(default_factory=lambda: uuid4().hex)
    schema_version: int = SCHEMA_VERSION

    def to_dict(self) -> JsonDict:
        return {
            "schemaVersion": self.schema_version,
            "id": self.id,
            "title": self.title,
            "source": self.source,
            "pages": self.pages,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "globalKeywords": list(self.global_keywords),
            "globalSummary": self.global_summary,
            "meta": self.meta.to_dict(),
            "category": self.category,
            "docType": self.doc_type,
            "thumbUrl": self.thumb_url,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> DocumentRecord:
        """Parse a persisted record.

        Raises:
            RecordCorrupt: If the payload does not follow the record schema.
        """

        if not isinstance(payload, dict):
            raise RecordCorrupt("Document record is not an object.")
        version = payload.get("schemaVersion", SCHEMA_VERSION)
        if not isinstance(version, int) or isinstance(version, bool) or version > SCHEMA_VERSION:
            raise RecordCorrupt(f"Unsupported schemaVersion {version!r}.")
        raw_chunks = payload.get("chunks") or []
        if not isinstance(raw_chunks, list):
            raise RecordCorrupt("chunks is not a list.")
        return cls(
            id=_str(payload, "id") or uuid4().hex,
            title=_str(payload, "title"),
            source=_str(payload, "source"),
            pages=_int(payload, "pages"),
            chunks=[Chunk.from_dict(item) for item in raw_chunks],
            global_keywords=_str_list(payload, "globalKeywords"),
            global_summary=_str(payload, "globalSummary"),
            meta=DocumentMeta.from_dict(payload.get("meta")),
            category=_str(payload, "category"),
            doc_type=_str(payload, "docType"),
            thumb_url=_str(payload, "thumbUrl") or PLACEHOLDER_THUMB_URL,
            schema_version=version,
        )


@dataclass(slots=True)
class IndexEntry:
    """A chunk flattened with its document's display fields for indexing."""

    doc_key: str
    chunk_id: str
    title: str
    keywords: str
    text: str
    page_start: int
    page_end: int
    pdf_url: str
    json_url: str
    thumb_url: str
    category: str
    doc_type: str
    date: str

    @classmethod
    def from_record(cls, record: DocumentRecord, doc_key: str, json_url: str) -> list[IndexEntry]:
        """Build one entry per chunk of ``record``."""

        global_keywords = " ".join(record.global_keywords)
        date = record.meta.detected_date.isoformat() if record.meta.detected_date else ""
        return [
            cls(
                doc_key=doc_key,
                chunk_id=chunk.chunk_id,
                title=record.title,
                keywords=(" ".join(chunk.keywords) + " " + global_keywords).strip(),
                text=chunk.text,
                page_start=chunk.page_start,
                page_end=chunk.page_end,
                pdf_url=record.source,
                json_url=json_url,
                thumb_url=record.thumb_url or PLACEHOLDER_THUMB_URL,
                category=record.category,
                doc_type=record.doc_type,
                date=date,
            )
            for chunk in record.chunks
        ]


@dataclass(slots=True)
class SearchResult:
    """A ranked chunk-level hit returned by a query."""

    title: str
    pdf_url: str
    json_url: str
    thumb_url: str
    category: str
    doc_type: str
    page_start: int
    page_end: int
    score: float
    date: datetime | None
    excerpt: str

    def to_dict(self) -> JsonDict:
        return {
            "title": self.title,
            "pdfUrl": self.pdf_url,
            "jsonUrl": self.json_url,
            "thumbUrl": self.thumb_url,
            "category": self.category,
            "docType": self.doc_type,
            "pageStart": self.page_start,
            "pageEnd": self.page_end,
            "score": self.score,
            "date": self.date.isoformat() if self.date else None,
            "excerpt": self.excerpt,
        }


def _str(payload: JsonDict, key: str, required: bool = False) -> str:
    value = payload.get(key)
    if value is None:
        if required:
            raise RecordCorrupt(f"{key} is missing.")
        return ""
    if not isinstance(value, str):
        raise RecordCorrupt(f"{key} is not a string.")
    return value


def _int(payload: JsonDict, key: str) -> int:
    value = payload.get(key, 0)
    if not isinstance(value, int) or isinstance(value, bool):
        raise RecordCorrupt(f"{key} is not an integer.")
    return value


def _str_list(payload: JsonDict, key: str) -> list[str]:
    value = payload.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise RecordCorrupt(f"{key} is not a list of strings.")
    return list(value)


__all__ = [
    "Chunk",
    "DocumentMeta",
    "DocumentRecord",
    "IndexEntry",
    "JsonDict",
    "PLACEHOLDER_THUMB_URL",
    "SCHEMA_VERSION",
    "SearchResult",
]
