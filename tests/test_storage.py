from datetime import datetime, timezone
import json

import pytest

from doclibrary.errors import RecordCorrupt
from doclibrary.models import DocumentRecord
from doclibrary.storage import JsonRecordStore


def test_saved_record_uses_camel_case_wire_format(store, make_record):
    record = make_record("Manual", texts=["Uno.", "Dos."], keywords=["turbina"], global_keywords=["motor"])

    path = store.save(record)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert path.name == "Manual.json"
    assert payload["schemaVersion"] == 1
    assert payload["globalKeywords"] == ["motor"]
    assert payload["chunks"][1]["chunkId"] == "chunk-0001"
    assert payload["chunks"][0]["pageStart"] == 1
    assert payload["meta"]["detectedDate"].startswith("2024-05-01")
    assert payload["thumbUrl"] == "/img/placeholder.svg"


def test_load_returns_equal_record(store, make_record):
    record = make_record("Circular", texts=["Aviación civil."], category="Normativa", doc_type="Circular")
    store.save(record)

    loaded = store.load("Circular")

    assert loaded == record


def test_save_replaces_previous_record(store, make_record):
    store.save(make_record("Manual", texts=["viejo"]))
    store.save(make_record("Manual", texts=["nuevo"]))

    assert store.count() == 1
    assert store.load("Manual").chunks[0].text == "nuevo"
    assert not list(store.data_dir.glob("*.tmp"))


def test_newer_schema_version_is_corrupt():
    with pytest.raises(RecordCorrupt):
        DocumentRecord.from_dict({"schemaVersion": 99, "title": "x", "source": "", "pages": 0})


def test_malformed_fields_are_corrupt():
    with pytest.raises(RecordCorrupt):
        DocumentRecord.from_dict({"title": "x", "pages": "tres"})
    with pytest.raises(RecordCorrupt):
        DocumentRecord.from_dict({"title": "x", "chunks": [{"text": "sin id"}]})
    with pytest.raises(RecordCorrupt):
        DocumentRecord.from_dict(["not", "an", "object"])


def test_iteration_skips_corrupt_files(store, make_record):
    store.save(make_record("Bueno"))
    (store.data_dir / "Malo.json").write_text("{not json", encoding="utf-8")

    keys = [stored.key for stored in store.iter_records()]

    assert keys == ["Bueno"]
    with pytest.raises(RecordCorrupt):
        store.load("Malo")


def test_listing_is_newest_first_and_filtered(store, make_record):
    store.save(make_record("Viejo", category="Normativa", doc_type="Circular",
                           date=datetime(2020, 1, 1, tzinfo=timezone.utc)))
    store.save(make_record("Nuevo", category="normativa", doc_type="Manual",
                           date=datetime(2024, 1, 1, tzinfo=timezone.utc)))
    store.save(make_record("Otro", category="Operaciones", doc_type="Circular",
                           date=datetime(2022, 1, 1, tzinfo=timezone.utc)))

    assert [item.title for item in store.list_summaries()] == ["Nuevo", "Otro", "Viejo"]
    assert [item.title for item in store.list_summaries(category="NORMATIVA")] == ["Nuevo", "Viejo"]
    assert [item.title for item in store.list_summaries(doc_type="circular")] == ["Otro", "Viejo"]
    assert [item.title for item in store.list_summaries("normativa", "circular")] == ["Viejo"]

    summary = store.list_summaries()[0].to_dict()
    assert summary["jsonUrl"] == "/data/Nuevo.json"
    assert summary["pdfUrl"] == "/files/Nuevo.pdf"


def test_empty_store(tmp_path):
    store = JsonRecordStore(tmp_path / "missing")

    assert store.count() == 0
    assert list(store.iter_records()) == []
    assert store.list_summaries() == []
