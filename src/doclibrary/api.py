from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
import os
from pathlib import Path
import time
from typing import Annotated, Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .config import load_config
from .errors import (
    DocLibraryError,
    IndexUnavailable,
    QuerySyntaxInvalid,
    SourceNotFound,
    SourceUnreadable,
)
from .logger import setup_logger
from .pipeline import IngestOutcome, LibraryPipeline, build_pipeline

LOGGER = logging.getLogger(__name__)

API_SEARCH_LIMIT = 50
MAX_SEARCH_LIMIT = 200


@asynccontextmanager
async def lifespan(app: FastAPI):
    load_dotenv()
    setup_logger("doclibrary", os.getenv("LOG_LEVEL", "INFO"))
    LOGGER.info("Starting document library API application lifespan.")
    app.state.pipeline = build_pipeline(load_config())
    try:
        yield
    finally:
        LOGGER.info("Document library API shutting down.")


# /docs is the document listing, so the interactive API docs move aside.
app = FastAPI(
    title="Document Library API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url=None,
)
origins = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "").split(",") if o.strip()] or [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


def get_pipeline(request: Request) -> LibraryPipeline:
    return request.app.state.pipeline


Pipeline = Annotated[LibraryPipeline, Depends(get_pipeline)]


class IngestResponse(BaseModel):
    status: str
    id: str
    title: str
    pages: int
    chunks: int
    indexedEntries: int
    jsonUrl: str
    pdfUrl: str
    thumbUrl: str

    @classmethod
    def from_outcome(cls, outcome: IngestOutcome) -> IngestResponse:
        record = outcome.record
        return cls(
            status="ok",
            id=record.id,
            title=record.title,
            pages=record.pages,
            chunks=len(record.chunks),
            indexedEntries=outcome.indexed_entries,
            jsonUrl=outcome.json_url,
            pdfUrl=record.source,
            thumbUrl=record.thumb_url,
        )


class RebuildResponse(BaseModel):
    status: str
    indexedEntries: int


def _http_error(exc: DocLibraryError) -> HTTPException:
    """Translate a library error into the matching HTTP status."""

    if isinstance(exc, QuerySyntaxInvalid):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, SourceNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, SourceUnreadable):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, IndexUnavailable):
        return HTTPException(status_code=503, detail="Search index is unavailable.")
    LOGGER.error("Unhandled library error: %s", exc, exc_info=exc)
    return HTTPException(status_code=500, detail="Document processing failed.")


@app.get("/healthz", tags=["Health"])
async def healthz() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/search", tags=["Search"])
async def search_endpoint(
    pipeline: Pipeline,
    q: str = "",
    limit: Annotated[int, Query(ge=1, le=MAX_SEARCH_LIMIT)] = API_SEARCH_LIMIT,
) -> dict[str, Any]:
    """Ranked chunk-level hits for a free-text query."""

    started = time.perf_counter()
    try:
        results = await asyncio.to_thread(pipeline.index.search, q, limit)
    except DocLibraryError as exc:
        raise _http_error(exc) from exc
    elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
    LOGGER.info("Query %r returned %s hit(s) in %s ms", q, len(results), elapsed_ms)
    return {
        "query": q,
        "count": len(results),
        "elapsedMs": elapsed_ms,
        "results": [result.to_dict() for result in results],
    }


@app.post("/search/rebuild", tags=["Search"], response_model=RebuildResponse)
async def search_rebuild(pipeline: Pipeline) -> RebuildResponse:
    return await _rebuild(pipeline)


@app.post("/admin/rebuild-index", tags=["Admin"], response_model=RebuildResponse)
async def admin_rebuild_index(pipeline: Pipeline) -> RebuildResponse:
    return await _rebuild(pipeline)


async def _rebuild(pipeline: LibraryPipeline) -> RebuildResponse:
    try:
        total = await asyncio.to_thread(pipeline.rebuild_index)
    except DocLibraryError as exc:
        raise _http_error(exc) from exc
    return RebuildResponse(status="ok", indexedEntries=total)


@app.post("/admin/upload", tags=["Admin"], response_model=IngestResponse)
async def admin_upload(
    pipeline: Pipeline,
    file: UploadFile = File(...),
    category: str = Form(""),
    docType: str = Form(""),
) -> IngestResponse:
    """Store an uploaded PDF under the files area, then ingest and index it."""

    filename = (file.filename or "").strip()
    if not filename.lower().endswith(".pdf"):
        LOGGER.error("Uploaded file is not a PDF: filename=%s, content_type=%s", filename, file.content_type)
        raise HTTPException(status_code=400, detail="Uploaded file must be a PDF document.")
    name = Path(filename).name
    # The stem becomes the document title.
    if not name[:-4].strip(" ."):
        LOGGER.error("Uploaded PDF has no usable name: filename=%s", filename)
        raise HTTPException(status_code=400, detail="Uploaded file needs a name.")

    pipeline.files_dir.mkdir(parents=True, exist_ok=True)
    destination = pipeline.files_dir / name
    try:
        with destination.open("wb") as buffer:
            while True:
                chunk = await file.read(1024 * 1024)
                if not chunk:
                    break
                buffer.write(chunk)
    except OSError as exc:
        LOGGER.error("Failed to store uploaded PDF: %s", exc, exc_info=True)
        destination.unlink(missing_ok=True)
        raise HTTPException(status_code=500, detail="Failed to store uploaded PDF.") from exc
    finally:
        await file.close()

    if destination.stat().st_size == 0:
        destination.unlink(missing_ok=True)
        raise HTTPException(status_code=400, detail="Uploaded PDF is empty.")

    try:
        outcome = await asyncio.to_thread(pipeline.ingest, destination, category, docType)
    except DocLibraryError as exc:
        raise _http_error(exc) from exc
    return IngestResponse.from_outcome(outcome)


@app.post("/admin/process-existing", tags=["Admin"], response_model=IngestResponse)
async def admin_process_existing(
    pipeline: Pipeline,
    file: str,
    category: str = "",
    docType: str = "",
) -> IngestResponse:
    """Ingest a PDF that is already in the files area."""

    try:
        outcome = await asyncio.to_thread(pipeline.ingest_existing, file, category, docType)
    except DocLibraryError as exc:
        raise _http_error(exc) from exc
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"{file} was not found.") from exc
    return IngestResponse.from_outcome(outcome)


@app.get("/admin/stats", tags=["Admin"])
async def admin_stats(pipeline: Pipeline) -> dict[str, Any]:
    stats = await asyncio.to_thread(pipeline.stats)
    return stats.to_dict()


@app.get("/docs", tags=["Documents"])
async def list_documents(
    pipeline: Pipeline,
    cat: str | None = None,
    type: str | None = None,  # noqa: A002
) -> dict[str, Any]:
    """Persisted documents, newest first, filtered by category and type."""

    items = await asyncio.to_thread(pipeline.store.list_summaries, cat, type)
    return {"count": len(items), "items": [item.to_dict() for item in items]}
