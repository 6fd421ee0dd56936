from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pypdf import PdfWriter
import pytest

from doclibrary.assembler import DocumentAssembler
from doclibrary.errors import SourceUnreadable
from doclibrary.models import Chunk, DocumentMeta, DocumentRecord
from doclibrary.pipeline import LibraryPipeline
from doclibrary.search_index import SearchIndex
from doclibrary.storage import JsonRecordStore
from doclibrary.text_analysis import KeywordExtractor, TextSummarizer
from doclibrary.text_extraction import ExtractionResult
from doclibrary.text_splitter import PageChunker
from doclibrary.thumbnails import ThumbnailGenerator


class FakeRasterizer:
    """Stands in for PdfRasterizer; records calls and writes a stub image."""

    def __init__(self) -> None:
        self.calls: list[dict] = []

    def render_page(self, pdf_path, page_number, output_path, dpi=None, max_size=None, cancel=None) -> Path:
        self.calls.append({"page": page_number, "dpi": dpi, "max_size": max_size, "output": output_path})
        output_path.write_bytes(b"\x89PNG fake")
        return output_path


class FakeExtractor:
    """Returns canned page texts keyed by file stem."""

    def __init__(self, pages_by_stem: dict[str, list[str]] | None = None, default: list[str] | None = None) -> None:
        self.pages_by_stem = pages_by_stem or {}
        self.default = default if default is not None else ["Informe de la turbina principal."]

    def extract(self, path: Path, cancel=None) -> ExtractionResult:
        if path.stem.startswith("roto"):
            raise SourceUnreadable(f"{path} is broken")
        return ExtractionResult(pages=self.pages_by_stem.get(path.stem, self.default), method="native")


@pytest.fixture
def make_pdf(tmp_path):
    def _make(name: str = "doc.pdf", pages: int = 1, directory: Path | None = None) -> Path:
        writer = PdfWriter()
        for _ in range(pages):
            writer.add_blank_page(width=612, height=792)
        target = (directory or tmp_path) / name
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("wb") as handle:
            writer.write(handle)
        return target

    return _make


@pytest.fixture
def store(tmp_path) -> JsonRecordStore:
    return JsonRecordStore(tmp_path / "wwwroot" / "data")


@pytest.fixture
def make_record():
    def _make(
        title: str = "Manual",
        texts: list[str] | None = None,
        keywords: list[str] | None = None,
        global_keywords: list[str] | None = None,
        category: str = "",
        doc_type: str = "",
        date: datetime | None = None,
    ) -> DocumentRecord:
        texts = texts if texts is not None else ["Texto de ejemplo."]
        chunks = [
            Chunk(
                chunk_id=f"chunk-{index:04d}",
                page_start=index + 1,
                page_end=index + 1,
                text=text,
                keywords=list(keywords or []),
            )
            for index, text in enumerate(texts)
        ]
        return DocumentRecord(
            title=title,
            source=f"/files/{title}.pdf",
            pages=len(texts),
            chunks=chunks,
            global_keywords=list(global_keywords or []),
            meta=DocumentMeta(detected_date=date or datetime(2024, 5, 1, tzinfo=timezone.utc)),
            category=category,
            doc_type=doc_type,
        )

    return _make


@pytest.fixture
def make_pipeline(tmp_path):
    def _make(extractor: FakeExtractor | None = None, web_root: Path | None = None) -> LibraryPipeline:
        root = web_root or tmp_path / "wwwroot"
        files_dir = root / "files"
        files_dir.mkdir(parents=True, exist_ok=True)
        record_store = JsonRecordStore(root / "data")
        assembler = DocumentAssembler(
            extractor=extractor or FakeExtractor(),
            chunker=PageChunker(max_chars=900),
            keywords=KeywordExtractor(),
            summarizer=TextSummarizer(),
            thumbnails=ThumbnailGenerator(FakeRasterizer(), root / "thumbs"),
            store=record_store,
        )
        index = SearchIndex(tmp_path / "index" / "library.sqlite3", record_store)
        return LibraryPipeline(files_dir=files_dir, assembler=assembler, store=record_store, index=index)

    return _make
