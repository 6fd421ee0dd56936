"""Exceptions raised by the document library."""

from __future__ import annotations


class DocLibraryError(Exception):
    """Base class for library errors."""


class SourceNotFound(DocLibraryError, FileNotFoundError):
    """Raised when the PDF to ingest does not exist."""


class SourceUnreadable(DocLibraryError):
    """Raised when the PDF exists but cannot be opened or parsed."""


class ExternalToolError(DocLibraryError):
    """Base class for page rendering and OCR failures."""


class ToolUnavailable(ExternalToolError):
    """Raised when the OCR executable cannot be located."""


class ToolFailed(ExternalToolError):
    """Raised when rendering or OCR of one page fails."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(f"{tool} failed: {message}")
        self.tool = tool


class ToolTimedOut(ExternalToolError):
    """Raised when OCR of a page exceeds its time budget."""


class OperationCancelled(DocLibraryError):
    """Raised when an ingestion is cancelled by the caller."""


class ThumbnailFailed(DocLibraryError):
    """Raised when the first-page preview cannot be rendered."""


class RecordCorrupt(DocLibraryError):
    """Raised when a persisted document record cannot be parsed."""


class QuerySyntaxInvalid(DocLibraryError):
    """Raised when a query cannot be parsed even as a literal phrase."""


class IndexUnavailable(DocLibraryError):
    """Raised when the search index cannot be opened or queried."""


# Names used by the OCR path when describing per-page degradation.
OcrToolUnavailable = ToolUnavailable
OcrPageFailed = ToolFailed

__all__ = [
    "DocLibraryError",
    "ExternalToolError",
    "IndexUnavailable",
    "OcrPageFailed",
    "OcrToolUnavailable",
    "OperationCancelled",
    "QuerySyntaxInvalid",
    "RecordCorrupt",
    "SourceNotFound",
    "SourceUnreadable",
    "ThumbnailFailed",
    "ToolFailed",
    "ToolTimedOut",
    "ToolUnavailable",
]
