"""Group page texts into page-bounded chunks."""

from __future__ import annotations

import logging
from typing import Sequence

from .models import Chunk

LOGGER = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n"


class PageChunker:
    """Accumulate whole pages; close the chunk before a page that would push it past ``max_chars``.

    Pages are never split, so a single page longer than ``max_chars`` becomes
    a chunk of its own. Each joined page counts one separator character.
    """

    def __init__(self, max_chars: int = 900) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive.")
        self.max_chars = max_chars

    def split(self, pages: Sequence[str]) -> list[Chunk]:
        """Split the ordered page texts into `Chunk` objects."""

        chunks: list[Chunk] = []
        buffer: list[str] = []
        buffer_chars = 0
        start_page = 1

        for page_number, text in enumerate(pages, start=1):
            text = text or ""
            separator = len(PAGE_SEPARATOR) if buffer else 0
            overflows = buffer_chars + separator + len(text) > self.max_chars

            # Blank-only buffers keep growing so that no chunk is empty.
            if overflows and any(part.strip() for part in buffer):
                chunks.append(self._emit_chunk(len(chunks), buffer, start_page, page_number - 1))
                buffer = []
                buffer_chars = 0
                separator = 0
                start_page = page_number

            buffer_chars += separator + len(text)
            buffer.append(text)

        page_count = len(pages)
        if buffer:
            if any(text.strip() for text in buffer):
                chunks.append(self._emit_chunk(len(chunks), buffer, start_page, page_count))
            elif chunks:
                # Blank trailing pages still belong to the last chunk's range.
                chunks[-1].page_end = page_count

        return chunks

    def _emit_chunk(self, index: int, pages: list[str], start_page: int, end_page: int) -> Chunk:
        LOGGER.debug("Emitting chunk %s covering pages %s-%s", index, start_page, end_page)
        return Chunk(
            chunk_id=f"chunk-{index:04d}",
            page_start=start_page,
            page_end=end_page,
            text=PAGE_SEPARATOR.join(pages),
        )
