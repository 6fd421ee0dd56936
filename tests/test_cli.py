import json

import pytest

from doclibrary import cli
from doclibrary.errors import IndexUnavailable


@pytest.fixture
def library(tmp_path, monkeypatch, make_pipeline):
    pipeline = make_pipeline()
    monkeypatch.setattr(cli, "build_pipeline", lambda config: pipeline)
    return pipeline


def test_ingest_and_search(library, make_pdf, tmp_path, capsys):
    pdf = make_pdf("Manual.pdf", directory=tmp_path / "inbox")

    assert cli.main(["ingest", str(pdf), "--category", "Normativa"]) == 0
    assert "Manual" in capsys.readouterr().out

    assert cli.main(["search", "turbina", "--limit", "5"]) == 0
    results = json.loads(capsys.readouterr().out)
    assert results[0]["title"] == "Manual"
    assert results[0]["category"] == "Normativa"


def test_ingest_failure_exit_code(library, make_pdf, tmp_path):
    pdf = make_pdf("roto.pdf", directory=tmp_path / "inbox")

    assert cli.main(["ingest", str(pdf)]) == 1


def test_rebuild_and_list(library, make_pdf, capsys):
    library.ingest(make_pdf("Circular.pdf", directory=library.files_dir), category="Operaciones")
    capsys.readouterr()

    assert cli.main(["rebuild"]) == 0
    assert "Indexed 1 chunk(s)." in capsys.readouterr().out

    assert cli.main(["list", "--cat", "operaciones"]) == 0
    items = json.loads(capsys.readouterr().out)
    assert [item["title"] for item in items] == ["Circular"]


def test_search_error_exit_code(library, monkeypatch):
    def unavailable(query, limit=None):
        raise IndexUnavailable("gone")

    monkeypatch.setattr(library.index, "search", unavailable)

    assert cli.main(["search", "turbina"]) == 2
