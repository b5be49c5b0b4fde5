"""Errors and filesystem helpers shared by the ingestion and search paths."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF"
INVALID_FORMAT_MESSAGE = "Invalid file format. Please upload a PDF file."


class PipelineError(Exception):
    """Base exception for ingestion pipeline errors.

    ``failed_at`` is set by the orchestrator to the last state the run
    reached before the error.
    """

    failed_at: str | None = None


class InvalidFormatError(PipelineError):
    """Raised when an upload does not start with the PDF signature."""


class PageLimitExceededError(PipelineError):
    """Raised when a PDF has more pages than the configured limit."""


class ConversionFailedError(PipelineError):
    """Raised when the PDF-to-image converter fails."""


class OcrFailedError(PipelineError):
    """Raised when OCR fails for any page."""

    def __init__(self, message: str, page_number: int | None = None) -> None:
        super().__init__(message)
        self.page_number = page_number


class SearchFailedError(Exception):
    """Raised when the completion endpoint cannot produce an answer.

    ``kind`` is one of ``upstream_unavailable``, ``upstream_error``,
    ``unexpected_response_shape`` or ``not_configured``; the underlying
    exception, if any, is chained as ``__cause__``.
    """

    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_ERROR = "upstream_error"
    UNEXPECTED_RESPONSE_SHAPE = "unexpected_response_shape"
    NOT_CONFIGURED = "not_configured"

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind


def check_binary_exists(binary_name: str) -> bool:
    """Return True if a binary is available on PATH."""

    return shutil.which(binary_name) is not None


def read_signature(path: str | Path, length: int = len(PDF_SIGNATURE)) -> bytes:
    """Return the first *length* bytes of a file."""

    with open(path, "rb") as handle:
        return handle.read(length)


def has_pdf_signature(path: str | Path) -> bool:
    return read_signature(path) == PDF_SIGNATURE


def guard_max_pages(page_count: int, max_pages: int | None) -> None:
    """Raise if page_count exceeds max_pages."""

    if max_pages is None:
        return
    if page_count > max_pages:
        raise PageLimitExceededError(
            f"PDF has {page_count} pages, exceeds limit of {max_pages}."
        )


def remove_file(path: str | Path | None) -> bool:
    """Remove a file if it exists. Failures are logged, never raised.

    Returns True when the path no longer exists afterwards.
    """

    if not path:
        return True
    try:
        os.remove(path)
    except FileNotFoundError:
        return True
    except OSError as exc:
        logger.warning("Failed to remove file %s: %s", path, exc)
        return False
    return True


def remove_tree(path: str | Path | None) -> bool:
    """Recursively remove a directory. Failures are logged, never raised."""

    if not path or not os.path.exists(path):
        return True
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.warning("Failed to remove directory %s: %s", path, exc)
        return False
    return True
