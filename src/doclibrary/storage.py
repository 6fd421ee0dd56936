"""JSON persistence for document records under the data area."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Iterator

from .errors import RecordCorrupt
from .models import PLACEHOLDER_THUMB_URL, DocumentRecord

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class StoredRecord:
    """A parsed record together with the key and URL it is stored under."""

    key: str
    json_url: str
    record: DocumentRecord


@dataclass(slots=True)
class RecordSummary:
    """Listing row for the documents page and the admin dashboard."""

    title: str
    pdf_url: str
    json_url: str
    thumb_url: str
    category: str
    doc_type: str
    date: datetime | None

    def to_dict(self) -> dict[str, object]:
        return {
            "title": self.title,
            "pdfUrl": self.pdf_url,
            "jsonUrl": self.json_url,
            "thumbUrl": self.thumb_url,
            "category": self.category,
            "docType": self.doc_type,
            "date": self.date.isoformat() if self.date else None,
        }


class JsonRecordStore:
    """Read and write one ``<key>.json`` file per document."""

    def __init__(self, data_dir: Path, url_prefix: str = "/data") -> None:
        self.data_dir = data_dir
        self.url_prefix = url_prefix.rstrip("/")

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def url_for(self, key: str) -> str:
        return f"{self.url_prefix}/{key}.json"

    def save(self, record: DocumentRecord, key: str | None = None) -> Path:
        """Write ``record`` under ``key`` (default: its title), replacing any previous file."""

        key = key or record.title
        self.data_dir.mkdir(parents=True, exist_ok=True)
        target = self.path_for(key)
        payload = json.dumps(record.to_dict(), ensure_ascii=False, indent=2)

        # Write then rename so readers never see a half-written record.
        fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        LOGGER.info("Persisted record %s with %s chunk(s) to %s", record.id, len(record.chunks), target)
        return target

    def load(self, key: str) -> DocumentRecord:
        """Parse the record stored under ``key``.

        Raises:
            FileNotFoundError: If no record exists for ``key``.
            RecordCorrupt: If the file is not a valid record.
        """

        return self._read(self.path_for(key))

    def iter_records(self) -> Iterator[StoredRecord]:
        """Yield every parsable record; corrupt files are logged and skipped."""

        for path in self._record_paths():
            try:
                record = self._read(path)
            except (RecordCorrupt, OSError) as exc:
                LOGGER.warning("Skipping unreadable record %s: %s", path.name, exc)
                continue
            yield StoredRecord(key=path.stem, json_url=self.url_for(path.stem), record=record)

    def list_summaries(self, category: str | None = None, doc_type: str | None = None) -> list[RecordSummary]:
        """List records newest first, optionally filtered case-insensitively."""

        items: list[RecordSummary] = []
        for stored in self.iter_records():
            record = stored.record
            path = self.path_for(stored.key)
            items.append(
                RecordSummary(
                    title=record.title or stored.key,
                    pdf_url=record.source,
                    json_url=stored.json_url,
                    thumb_url=record.thumb_url or PLACEHOLDER_THUMB_URL,
                    category=record.category,
                    doc_type=record.doc_type,
                    date=record.meta.detected_date or _modified_at(path),
                )
            )

        if category:
            items = [item for item in items if item.category.casefold() == category.casefold()]
        if doc_type:
            items = [item for item in items if item.doc_type.casefold() == doc_type.casefold()]
        return sorted(items, key=_sort_date, reverse=True)

    def count(self) -> int:
        return len(self._record_paths())

    def _record_paths(self) -> list[Path]:
        if not self.data_dir.is_dir():
            return []
        return sorted(self.data_dir.glob("*.json"))

    def _read(self, path: Path) -> DocumentRecord:
        text = path.read_text(encoding="utf-8")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RecordCorrupt(f"{path.name} is not valid JSON: {exc}") from exc
        return DocumentRecord.from_dict(payload)


def _modified_at(path: Path) -> datetime | None:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except OSError:
        return None


def _sort_date(item: RecordSummary) -> datetime:
    date = item.date or datetime.min.replace(tzinfo=timezone.utc)
    # Naive timestamps from older records are treated as UTC.
    return date if date.tzinfo else date.replace(tzinfo=timezone.utc)
