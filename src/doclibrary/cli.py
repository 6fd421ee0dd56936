"""Command line entrypoint for ingestion, indexing and search."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from dotenv import load_dotenv

from .config import load_config
from .errors import DocLibraryError
from .logger import setup_logger
from .pipeline import build_pipeline

LOGGER = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Entrypoint used by the CLI script."""

    load_dotenv()
    args = _parse_args(argv)
    setup_logger("doclibrary", args.log_level)
    pipeline = build_pipeline(load_config())

    try:
        if args.command == "ingest":
            outcomes = pipeline.run(args.paths, args.category, args.doc_type)
            for outcome in outcomes:
                print(f"{outcome.doc_key}\t{outcome.record.pages} page(s)\t{outcome.indexed_entries} chunk(s)")
            return 0 if outcomes or not args.paths else 1
        if args.command == "rebuild":
            total = pipeline.rebuild_index()
            print(f"Indexed {total} chunk(s).")
            return 0
        if args.command == "search":
            results = pipeline.index.search(args.query, args.limit)
            print(json.dumps([result.to_dict() for result in results], ensure_ascii=False, indent=2))
            return 0
        if args.command == "list":
            items = pipeline.store.list_summaries(args.cat, args.type)
            print(json.dumps([item.to_dict() for item in items], ensure_ascii=False, indent=2))
            return 0
    except DocLibraryError as exc:
        LOGGER.error("%s", exc)
        return 2
    return 1


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        description="Ingest PDF documents into the library and search them.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    ingest = commands.add_parser("ingest", help="Ingest PDF files or directories of PDFs.")
    ingest.add_argument("paths", nargs="+", type=Path)
    ingest.add_argument("--category", default="")
    ingest.add_argument("--doc-type", dest="doc_type", default="")

    commands.add_parser("rebuild", help="Rebuild the search index from persisted records.")

    search = commands.add_parser("search", help="Query the search index.")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=None)

    listing = commands.add_parser("list", help="List persisted documents, newest first.")
    listing.add_argument("--cat", default=None)
    listing.add_argument("--type", default=None)

    return parser.parse_args(argv)


if __name__ == "__main__":
    sys.exit(main())
