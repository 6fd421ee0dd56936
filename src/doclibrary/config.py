"""Application configuration helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path


@dataclass(slots=True)
class PathsConfig:
    """Filesystem locations for uploads, records, thumbnails and the index."""

    web_root: Path
    index_dir: Path

    @property
    def files_dir(self) -> Path:
        return self.web_root / "files"

    @property
    def data_dir(self) -> Path:
        return self.web_root / "data"

    @property
    def thumbs_dir(self) -> Path:
        return self.web_root / "thumbs"

    @property
    def index_path(self) -> Path:
        return self.index_dir / "library.sqlite3"

    def ensure(self) -> None:
        """Create every directory the library writes to."""

        for directory in (self.files_dir, self.data_dir, self.thumbs_dir, self.index_dir):
            directory.mkdir(parents=True, exist_ok=True)


@dataclass(slots=True)
class ToolsConfig:
    """Page rendering and OCR settings."""

    tesseract_path: str | None = None
    timeout_seconds: float = 120.0
    ocr_languages: str = "spa+eng"
    ocr_dpi: int = 300


@dataclass(slots=True)
class IngestConfig:
    """Knobs for text extraction, chunking and derived metadata."""

    min_text_chars: int = 200
    chunk_size: int = 900
    chunk_keywords: int = 12
    chunk_summary_sentences: int = 3
    global_keywords: int = 20
    global_summary_sentences: int = 10
    thumbnail_size: int = 480


@dataclass(slots=True)
class SearchConfig:
    """Defaults for queries against the chunk index."""

    default_limit: int = 20
    excerpt_chars: int = 200


@dataclass(slots=True)
class AppConfig:
    """Container for all runtime configuration."""

    paths: PathsConfig
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    search: SearchConfig = field(default_factory=SearchConfig)


def load_config() -> AppConfig:
    """Load configuration from environment variables.

    Returns:
        AppConfig: Fully populated configuration object.

    Raises:
        RuntimeError: If a numeric environment variable cannot be parsed.
    """

    web_root = Path(os.getenv("DOCLIB_WEB_ROOT", "wwwroot")).expanduser().resolve()
    index_dir = Path(
        os.getenv("DOCLIB_INDEX_DIR", str(Path("App_Data") / "index")),
    ).expanduser().resolve()

    return AppConfig(
        paths=PathsConfig(web_root=web_root, index_dir=index_dir),
        tools=ToolsConfig(
            tesseract_path=os.getenv("TESSERACT_PATH") or None,
            timeout_seconds=_float_env("DOCLIB_TOOL_TIMEOUT", 120.0),
            ocr_languages=os.getenv("DOCLIB_OCR_LANG", "spa+eng"),
            ocr_dpi=_int_env("DOCLIB_OCR_DPI", 300),
        ),
        ingest=IngestConfig(
            min_text_chars=_int_env("DOCLIB_MIN_TEXT_CHARS", 200),
            chunk_size=_int_env("DOCLIB_CHUNK_SIZE", 900),
            thumbnail_size=_int_env("DOCLIB_THUMB_SIZE", 480),
        ),
        search=SearchConfig(
            default_limit=_int_env("DOCLIB_SEARCH_LIMIT", 20),
            excerpt_chars=_int_env("DOCLIB_EXCERPT_CHARS", 200),
        ),
    )


def _int_env(var_name: str, default: int) -> int:
    """Read an integer from the environment or raise an error."""

    raw = os.getenv(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{var_name} must be an integer value.") from exc


def _float_env(var_name: str, default: float) -> float:
    """Read a float from the environment or raise an error."""

    raw = os.getenv(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{var_name} must be a float value.") from exc
