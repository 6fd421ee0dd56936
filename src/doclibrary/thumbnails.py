"""First-page preview images."""

from __future__ import annotations

import logging
from pathlib import Path
import threading

from .errors import ExternalToolError, ThumbnailFailed
from .models import PLACEHOLDER_THUMB_URL
from .tools import PdfRasterizer

LOGGER = logging.getLogger(__name__)


class ThumbnailGenerator:
    """Render page 1, cropped to its crop box, longest side capped."""

    def __init__(
        self,
        rasterizer: PdfRasterizer,
        thumbs_dir: Path,
        max_size: int = 480,
        url_prefix: str = "/thumbs",
    ) -> None:
        self._rasterizer = rasterizer
        self.thumbs_dir = thumbs_dir
        self.max_size = max_size
        self.url_prefix = url_prefix.rstrip("/")

    def target_path(self, title: str) -> Path:
        return self.thumbs_dir / f"{title}.png"

    def render(self, pdf_path: Path, title: str, cancel: threading.Event | None = None) -> Path:
        """Render the preview for ``title`` and return its path.

        Raises:
            ThumbnailFailed: If the image could not be produced.
        """

        target = self.target_path(title)
        try:
            self.thumbs_dir.mkdir(parents=True, exist_ok=True)
            # A stale preview must not survive a failed re-render.
            target.unlink(missing_ok=True)
            return self._rasterizer.render_page(
                pdf_path,
                1,
                target,
                max_size=self.max_size,
                cancel=cancel,
            )
        except (ExternalToolError, OSError) as exc:
            raise ThumbnailFailed(f"Thumbnail for {pdf_path.name} failed: {exc}") from exc

    def generate(self, pdf_path: Path, title: str, cancel: threading.Event | None = None) -> str:
        """Return the preview URL, or the placeholder if rendering failed."""

        try:
            self.render(pdf_path, title, cancel)
        except ThumbnailFailed as exc:
            LOGGER.warning("%s; using placeholder.", exc)
            return PLACEHOLDER_THUMB_URL
        if not self.target_path(title).exists():
            return PLACEHOLDER_THUMB_URL
        return f"{self.url_prefix}/{title}.png"
