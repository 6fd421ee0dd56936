"""Turn one PDF into a persisted document record."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
import logging
from pathlib import Path
import threading
import time

from .config import IngestConfig
from .models import DocumentMeta, DocumentRecord
from .storage import JsonRecordStore
from .text_analysis import KeywordExtractor, TextSummarizer
from .text_extraction import PdfTextExtractor
from .text_splitter import PageChunker
from .thumbnails import ThumbnailGenerator

LOGGER = logging.getLogger(__name__)


class DocumentAssembler:
    """Extract, chunk, describe and persist a single PDF."""

    def __init__(
        self,
        extractor: PdfTextExtractor,
        chunker: PageChunker,
        keywords: KeywordExtractor,
        summarizer: TextSummarizer,
        thumbnails: ThumbnailGenerator,
        store: JsonRecordStore,
        settings: IngestConfig | None = None,
        files_url_prefix: str = "/files",
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._keywords = keywords
        self._summarizer = summarizer
        self._thumbnails = thumbnails
        self._store = store
        self._settings = settings or IngestConfig()
        self._files_url_prefix = files_url_prefix.rstrip("/")

    def assemble(
        self,
        pdf_path: Path,
        category: str = "",
        doc_type: str = "",
        cancel: threading.Event | None = None,
    ) -> DocumentRecord:
        """Build the record for ``pdf_path``, persist it and return it.

        The record is stored under the file stem; re-ingesting the same file
        name replaces the previous record.

        Raises:
            SourceNotFound: If ``pdf_path`` does not exist.
            SourceUnreadable: If ``pdf_path`` cannot be parsed.
            OperationCancelled: If ``cancel`` is set before completion.
        """

        started = time.perf_counter()
        title = pdf_path.stem
        settings = self._settings

        extraction = self._extractor.extract(pdf_path, cancel)
        pages = extraction.pages

        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="thumbnail") as pool:
            thumb_future = pool.submit(self._thumbnails.generate, pdf_path, title, cancel)

            chunks = self._chunker.split(pages)
            for chunk in chunks:
                chunk.keywords = self._keywords.extract_top(chunk.text, settings.chunk_keywords)
                chunk.summary = self._summarizer.summarize(chunk.text, settings.chunk_summary_sentences)

            global_keywords = self._keywords.extract_top("\n".join(pages), settings.global_keywords)
            global_summary = self._summarizer.summarize(
                " ".join(chunk.text for chunk in chunks),
                settings.global_summary_sentences,
            )
            thumb_url = thumb_future.result()

        record = DocumentRecord(
            title=title,
            source=f"{self._files_url_prefix}/{pdf_path.name}",
            pages=len(pages),
            chunks=chunks,
            global_keywords=global_keywords,
            global_summary=global_summary,
            meta=DocumentMeta(detected_date=datetime.now(timezone.utc)),
            category=category or "",
            doc_type=doc_type or "",
            thumb_url=thumb_url,
        )
        self._store.save(record, key=title)

        LOGGER.info(
            "Assembled %s: %s page(s) via %s, %s chunk(s) in %.0f ms",
            pdf_path.name,
            record.pages,
            extraction.method,
            len(chunks),
            (time.perf_counter() - started) * 1000,
        )
        return record
