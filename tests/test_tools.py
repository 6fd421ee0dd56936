import threading

import fitz
import pytest
import pytesseract

from doclibrary.errors import OperationCancelled, ToolFailed, ToolTimedOut, ToolUnavailable
from doclibrary.tools import OcrEngine, PdfRasterizer


def _pixmap(path):
    return fitz.Pixmap(str(path))


def test_render_page_at_dpi(make_pdf, tmp_path):
    pdf = make_pdf(pages=2)
    target = tmp_path / "p-00002.png"

    assert PdfRasterizer().render_page(pdf, 2, target, dpi=300) == target

    image = _pixmap(target)
    # Letter-size page: 8.5 x 11 inches.
    assert abs(image.width - 2550) <= 1
    assert abs(image.height - 3300) <= 1


def test_default_dpi_is_used(make_pdf, tmp_path):
    target = tmp_path / "page.png"

    PdfRasterizer(default_dpi=72).render_page(make_pdf(), 1, target)

    assert abs(_pixmap(target).width - 612) <= 1


def test_max_size_caps_longest_side(make_pdf, tmp_path):
    target = tmp_path / "thumb.png"

    PdfRasterizer().render_page(make_pdf(), 1, target, max_size=120)

    image = _pixmap(target)
    assert abs(image.height - 120) <= 1
    assert image.width < image.height


def test_page_out_of_range(make_pdf, tmp_path):
    with pytest.raises(ToolFailed) as excinfo:
        PdfRasterizer().render_page(make_pdf(pages=1), 3, tmp_path / "x.png")
    assert excinfo.value.tool == "pymupdf"
    assert not (tmp_path / "x.png").exists()


def test_unreadable_document(tmp_path):
    broken = tmp_path / "roto.pdf"
    broken.write_bytes(b"not a pdf")

    with pytest.raises(ToolFailed):
        PdfRasterizer().render_page(broken, 1, tmp_path / "x.png")


def test_render_honours_cancellation(make_pdf, tmp_path):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        PdfRasterizer().render_page(make_pdf(), 1, tmp_path / "x.png", cancel=cancel)


def test_recognize_passes_languages_and_timeout(monkeypatch, tmp_path):
    calls = []

    def fake_image_to_string(image, lang=None, timeout=0):
        calls.append((image, lang, timeout))
        return "texto reconocido\n"

    monkeypatch.setattr(pytesseract, "image_to_string", fake_image_to_string)
    image = tmp_path / "p-00001.png"

    text = OcrEngine("spa", timeout_seconds=15).recognize(image)

    assert text == "texto reconocido\n"
    assert calls == [(str(image), "spa", 15)]


def test_recognize_without_timeout(monkeypatch, tmp_path):
    calls = []
    monkeypatch.setattr(pytesseract, "image_to_string", lambda image, lang=None, timeout=0: calls.append(timeout) or "")

    OcrEngine(timeout_seconds=None).recognize(tmp_path / "a.png")

    assert calls == [0]


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (pytesseract.TesseractNotFoundError(), ToolUnavailable),
        (pytesseract.TesseractError(1, "bad image"), ToolFailed),
        (RuntimeError("Tesseract process timeout"), ToolTimedOut),
    ],
)
def test_recognize_error_mapping(monkeypatch, tmp_path, error, expected):
    def failing(image, lang=None, timeout=0):
        raise error

    monkeypatch.setattr(pytesseract, "image_to_string", failing)

    with pytest.raises(expected):
        OcrEngine().recognize(tmp_path / "a.png")


def test_tesseract_cmd_override(monkeypatch):
    monkeypatch.setattr(pytesseract.pytesseract, "tesseract_cmd", "tesseract")

    OcrEngine(tesseract_cmd="/opt/tesseract/bin/tesseract")

    assert pytesseract.pytesseract.tesseract_cmd == "/opt/tesseract/bin/tesseract"


def test_recognize_honours_cancellation(monkeypatch, tmp_path):
    monkeypatch.setattr(pytesseract, "image_to_string", lambda *args, **kwargs: pytest.fail("should not run"))
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        OcrEngine().recognize(tmp_path / "a.png", cancel=cancel)
