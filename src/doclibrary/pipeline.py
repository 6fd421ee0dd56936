"""High level ingestion pipeline: assemble a record, then index it."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from pathlib import Path
import threading

from .assembler import DocumentAssembler
from .config import AppConfig
from .models import DocumentRecord
from .search_index import SearchIndex
from .storage import JsonRecordStore, RecordSummary
from .text_analysis import KeywordExtractor, TextSummarizer
from .text_extraction import NativeTextBackend, OcrTextBackend, PdfTextExtractor
from .text_splitter import PageChunker
from .thumbnails import ThumbnailGenerator
from .tools import OcrEngine, PdfRasterizer

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestOutcome:
    """A record that was persisted and indexed."""

    record: DocumentRecord
    doc_key: str
    json_url: str
    indexed_entries: int


@dataclass(slots=True)
class LibraryStats:
    """Counts shown on the admin dashboard."""

    pdf_count: int
    record_count: int
    total_size_mb: float
    recent: list[RecordSummary] = field(default_factory=list)

    @property
    def last_processed(self) -> datetime | None:
        return self.recent[0].date if self.recent else None

    def to_dict(self) -> dict[str, object]:
        last = self.last_processed
        return {
            "pdfCount": self.pdf_count,
            "recordCount": self.record_count,
            "totalSizeMb": self.total_size_mb,
            "lastProcessed": last.isoformat() if last else None,
            "recent": [item.to_dict() for item in self.recent],
        }


class LibraryPipeline:
    """Coordinate ingestion, persistence and indexing."""

    def __init__(
        self,
        files_dir: Path,
        assembler: DocumentAssembler,
        store: JsonRecordStore,
        index: SearchIndex,
    ) -> None:
        self.files_dir = files_dir
        self.store = store
        self.index = index
        self._assembler = assembler
        self._title_locks: dict[str, threading.Lock] = {}
        self._title_locks_guard = threading.Lock()

    def ingest(
        self,
        pdf_path: Path,
        category: str = "",
        doc_type: str = "",
        cancel: threading.Event | None = None,
    ) -> IngestOutcome:
        """Assemble ``pdf_path`` into a record and upsert it into the index.

        Ingestions of the same file name are serialized; the last one wins.
        """

        doc_key = pdf_path.stem
        with self._title_lock(doc_key):
            record = self._assembler.assemble(pdf_path, category, doc_type, cancel)
            json_url = self.store.url_for(doc_key)
            added = self.index.upsert(record, json_url, doc_key)
        return IngestOutcome(record=record, doc_key=doc_key, json_url=json_url, indexed_entries=added)

    def ingest_existing(self, file_name: str, category: str = "", doc_type: str = "") -> IngestOutcome:
        """Ingest a PDF already stored in the files area.

        Raises:
            FileNotFoundError: If ``file_name`` is not in the files area.
        """

        path = self.files_dir / Path(file_name).name
        if not path.is_file():
            raise FileNotFoundError(f"{file_name} does not exist in {self.files_dir}")
        return self.ingest(path, category, doc_type)

    def run(self, paths: list[Path], category: str = "", doc_type: str = "") -> list[IngestOutcome]:
        """Ingest every PDF in ``paths`` (files or directories).

        A failing document is logged and skipped.
        """

        pdf_paths: list[Path] = []
        for path in paths:
            if path.is_dir():
                pdf_paths.extend(sorted(path.glob("*.pdf")))
            else:
                pdf_paths.append(path)
        LOGGER.info("Found %s PDF(s) to ingest", len(pdf_paths))

        outcomes: list[IngestOutcome] = []
        for path in pdf_paths:
            try:
                outcomes.append(self.ingest(path, category, doc_type))
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to ingest %s", path)
                continue
        LOGGER.info("Completed ingestion: %s/%s file(s) processed", len(outcomes), len(pdf_paths))
        return outcomes

    def rebuild_index(self) -> int:
        return self.index.rebuild()

    def stats(self, recent: int = 6) -> LibraryStats:
        pdfs = sorted(self.files_dir.glob("*.pdf")) if self.files_dir.is_dir() else []
        total_bytes = sum(path.stat().st_size for path in pdfs)
        return LibraryStats(
            pdf_count=len(pdfs),
            record_count=self.store.count(),
            total_size_mb=round(total_bytes / (1024 * 1024), 2),
            recent=self.store.list_summaries()[:recent],
        )

    def _title_lock(self, title: str) -> threading.Lock:
        with self._title_locks_guard:
            return self._title_locks.setdefault(title, threading.Lock())


def build_pipeline(config: AppConfig) -> LibraryPipeline:
    """Construct a pipeline using the provided configuration."""

    paths = config.paths
    paths.ensure()
    tools = config.tools

    rasterizer = PdfRasterizer(default_dpi=tools.ocr_dpi)
    ocr = OcrEngine(tools.ocr_languages, tools.tesseract_path, tools.timeout_seconds)
    extractor = PdfTextExtractor(
        native=NativeTextBackend(),
        fallback=OcrTextBackend(rasterizer, ocr, dpi=tools.ocr_dpi),
        min_text_chars=config.ingest.min_text_chars,
    )
    store = JsonRecordStore(paths.data_dir)
    assembler = DocumentAssembler(
        extractor=extractor,
        chunker=PageChunker(max_chars=config.ingest.chunk_size),
        keywords=KeywordExtractor(),
        summarizer=TextSummarizer(),
        thumbnails=ThumbnailGenerator(rasterizer, paths.thumbs_dir, max_size=config.ingest.thumbnail_size),
        store=store,
        settings=config.ingest,
    )
    index = SearchIndex(
        paths.index_path,
        store,
        default_limit=config.search.default_limit,
        excerpt_chars=config.search.excerpt_chars,
    )
    return LibraryPipeline(files_dir=paths.files_dir, assembler=assembler, store=store, index=index)
