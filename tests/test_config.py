from pathlib import Path

import pytest

from doclibrary.config import load_config


def test_defaults(monkeypatch):
    for name in (
        "DOCLIB_WEB_ROOT",
        "DOCLIB_INDEX_DIR",
        "TESSERACT_PATH",
        "DOCLIB_CHUNK_SIZE",
        "DOCLIB_MIN_TEXT_CHARS",
        "DOCLIB_SEARCH_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)

    config = load_config()

    assert config.paths.web_root == Path("wwwroot").resolve()
    assert config.paths.index_path == (Path("App_Data") / "index" / "library.sqlite3").resolve()
    assert config.tools.tesseract_path is None
    assert config.tools.ocr_dpi == 300
    assert config.ingest.chunk_size == 900
    assert config.ingest.min_text_chars == 200
    assert config.search.default_limit == 20


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("DOCLIB_WEB_ROOT", str(tmp_path / "web"))
    monkeypatch.setenv("TESSERACT_PATH", "/opt/tesseract/bin/tesseract")
    monkeypatch.setenv("DOCLIB_CHUNK_SIZE", "1200")
    monkeypatch.setenv("DOCLIB_TOOL_TIMEOUT", "2.5")

    config = load_config()

    assert config.paths.files_dir == (tmp_path / "web").resolve() / "files"
    assert config.tools.tesseract_path == "/opt/tesseract/bin/tesseract"
    assert config.tools.timeout_seconds == 2.5
    assert config.ingest.chunk_size == 1200


def test_invalid_number_names_variable(monkeypatch):
    monkeypatch.setenv("DOCLIB_CHUNK_SIZE", "mucho")

    with pytest.raises(RuntimeError, match="DOCLIB_CHUNK_SIZE"):
        load_config()
