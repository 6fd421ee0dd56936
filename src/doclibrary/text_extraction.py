"""Per-page text extraction with an OCR fallback for image-only PDFs."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import shutil
import tempfile
import threading
from typing import Protocol

from pypdf import PdfReader

from .errors import ExternalToolError, OperationCancelled, SourceNotFound, SourceUnreadable
from .tools import OcrEngine, PdfRasterizer

LOGGER = logging.getLogger(__name__)

METHOD_NATIVE = "native"
METHOD_OCR = "ocr"


@dataclass(slots=True)
class OpenedPdf:
    """A PDF that was successfully opened for extraction."""

    path: Path
    reader: PdfReader
    page_count: int


@dataclass(slots=True)
class ExtractionResult:
    """Ordered page texts plus the backend that produced them."""

    pages: list[str]
    method: str


class PageTextBackend(Protocol):
    """Strategy producing one text string per page, in page order."""

    def extract(self, pdf: OpenedPdf, cancel: threading.Event | None = None) -> list[str]:
        ...


class NativeTextBackend:
    """Read the PDF text layer with pypdf."""

    def extract(self, pdf: OpenedPdf, cancel: threading.Event | None = None) -> list[str]:
        pages: list[str] = []
        for index, page in enumerate(pdf.reader.pages, start=1):
            _raise_if_cancelled(cancel)
            try:
                text = page.extract_text() or ""
            except Exception:  # noqa: BLE001
                LOGGER.warning("Text layer of page %s in %s could not be read.", index, pdf.path, exc_info=True)
                text = ""
            pages.append(text)
        return pages


class OcrTextBackend:
    """Rasterize every page and run OCR over each image.

    A page that cannot be rendered or recognized comes back empty; only
    cancellation aborts the document.
    """

    def __init__(self, rasterizer: PdfRasterizer, ocr: OcrEngine, dpi: int = 300) -> None:
        self._rasterizer = rasterizer
        self._ocr = ocr
        self._dpi = dpi

    def extract(self, pdf: OpenedPdf, cancel: threading.Event | None = None) -> list[str]:
        scratch = Path(tempfile.mkdtemp(prefix="doclib_"))
        try:
            return [
                self._page_text(pdf.path, number, scratch, cancel)
                for number in range(1, pdf.page_count + 1)
            ]
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def _page_text(
        self,
        pdf_path: Path,
        page_number: int,
        scratch: Path,
        cancel: threading.Event | None,
    ) -> str:
        _raise_if_cancelled(cancel)
        try:
            image = self._rasterizer.render_page(
                pdf_path,
                page_number,
                scratch / f"p-{page_number:05d}.png",
                dpi=self._dpi,
                cancel=cancel,
            )
        except ExternalToolError as exc:
            LOGGER.warning("Rasterizing page %s of %s failed: %s", page_number, pdf_path.name, exc)
            return ""

        try:
            return self._ocr.recognize(image, cancel=cancel)
        except ExternalToolError as exc:
            LOGGER.warning("OCR of page %s of %s failed: %s", page_number, pdf_path.name, exc)
            return ""


class PdfTextExtractor:
    """Choose between the native and OCR backends by how much text was found."""

    def __init__(
        self,
        native: PageTextBackend,
        fallback: PageTextBackend,
        min_text_chars: int = 200,
    ) -> None:
        self._native = native
        self._fallback = fallback
        self.min_text_chars = min_text_chars

    def extract(self, path: Path, cancel: threading.Event | None = None) -> ExtractionResult:
        """Return the text of every page of ``path``.

        Raises:
            SourceNotFound: If the file does not exist.
            SourceUnreadable: If the file cannot be parsed as a PDF.
            OperationCancelled: If ``cancel`` is set during extraction.
        """

        pdf = open_pdf(path)
        pages = self._native.extract(pdf, cancel)
        if not self.is_insufficient(pages):
            return ExtractionResult(pages=pages, method=METHOD_NATIVE)

        LOGGER.info("%s has little or no text layer; running OCR over %s page(s).", path.name, pdf.page_count)
        pages = self._fallback.extract(pdf, cancel)
        return ExtractionResult(pages=pages, method=METHOD_OCR)

    def is_insufficient(self, pages: list[str]) -> bool:
        total = "".join(pages).strip()
        return len(total) < self.min_text_chars


def open_pdf(path: Path) -> OpenedPdf:
    """Open ``path`` with pypdf and count its pages."""

    if not path.is_file():
        raise SourceNotFound(f"Document {path} does not exist.")
    try:
        reader = PdfReader(path)
        page_count = len(reader.pages)
    except Exception as exc:  # noqa: BLE001
        raise SourceUnreadable(f"Document {path} could not be opened: {exc}") from exc
    return OpenedPdf(path=path, reader=reader, page_count=page_count)


def _raise_if_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("Text extraction was cancelled.")
