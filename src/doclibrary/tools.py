"""Page rasterization with PyMuPDF and OCR through pytesseract."""

from __future__ import annotations

import logging
from pathlib import Path
import threading

import fitz  # PyMuPDF
import pytesseract

from .errors import OperationCancelled, ToolFailed, ToolTimedOut, ToolUnavailable

LOGGER = logging.getLogger(__name__)

POINTS_PER_INCH = 72.0


def raise_if_cancelled(cancel: threading.Event | None, what: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"{what} was cancelled.")


class PdfRasterizer:
    """Render single PDF pages to PNG files.

    PyMuPDF renders the visible page area, which is the page's crop box.
    """

    name = "pymupdf"

    def __init__(self, default_dpi: int = 300) -> None:
        self.default_dpi = default_dpi

    def render_page(
        self,
        pdf_path: Path,
        page_number: int,
        output_path: Path,
        dpi: int | None = None,
        max_size: int | None = None,
        cancel: threading.Event | None = None,
    ) -> Path:
        """Render ``page_number`` (1-based) of ``pdf_path`` to ``output_path``.

        ``max_size`` caps the longest side in pixels, keeping the aspect
        ratio; otherwise the page is rendered at ``dpi``.

        Raises:
            ToolFailed: If the document or page cannot be rendered.
            OperationCancelled: If ``cancel`` is already set.
        """

        raise_if_cancelled(cancel, f"Rendering page {page_number} of {pdf_path.name}")
        try:
            with fitz.open(str(pdf_path)) as doc:
                if not 1 <= page_number <= doc.page_count:
                    raise ValueError(f"document has {doc.page_count} page(s)")
                page = doc.load_page(page_number - 1)
                area = page.rect
                if max_size:
                    zoom = max_size / max(area.width, area.height)
                else:
                    zoom = (dpi or self.default_dpi) / POINTS_PER_INCH
                pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
                pix.save(str(output_path))
        except Exception as exc:  # noqa: BLE001
            raise ToolFailed(self.name, f"page {page_number} of {pdf_path.name}: {exc}") from exc
        LOGGER.debug("Rendered page %s of %s to %s", page_number, pdf_path.name, output_path)
        return output_path


class OcrEngine:
    """Recognize text in a raster image with tesseract."""

    name = "tesseract"

    def __init__(
        self,
        languages: str = "spa+eng",
        tesseract_cmd: str | None = None,
        timeout_seconds: float | None = 120.0,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.languages = languages
        self.timeout_seconds = timeout_seconds

    def recognize(self, image_path: Path, cancel: threading.Event | None = None) -> str:
        """Return the recognized text for one image.

        Raises:
            ToolUnavailable: If the tesseract executable cannot be found.
            ToolTimedOut: If recognition exceeds ``timeout_seconds``.
            ToolFailed: If tesseract exits with an error.
            OperationCancelled: If ``cancel`` is already set.
        """

        raise_if_cancelled(cancel, f"OCR of {image_path.name}")
        try:
            return pytesseract.image_to_string(
                str(image_path),
                lang=self.languages,
                timeout=self.timeout_seconds or 0,
            )
        except pytesseract.TesseractNotFoundError as exc:
            raise ToolUnavailable(f"{self.name} executable not found: {exc}") from exc
        except pytesseract.TesseractError as exc:
            raise ToolFailed(self.name, f"{image_path.name}: {exc.message}") from exc
        except RuntimeError as exc:
            # pytesseract kills the process and raises a bare RuntimeError on timeout.
            raise ToolTimedOut(
                f"{self.name} did not finish {image_path.name} within {self.timeout_seconds} seconds.",
            ) from exc
