"""Ingestion orchestrator: validate -> rasterize -> OCR fan-out -> segment.

Each run gets its own scratch directory. Whatever happens, the uploaded
file and the scratch directory are removed exactly once when the run ends.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, Sequence
from uuid import uuid4

from . import config
from .ocr import recognize_page
from .rasterize import rasterize_pdf
from .schema import IngestionResult, PageImage, PageText, PipelineState, UploadedDocument
from .segment import join_pages, split_paragraphs
from .utils import (
    INVALID_FORMAT_MESSAGE,
    ConversionFailedError,
    InvalidFormatError,
    OcrFailedError,
    PipelineError,
    has_pdf_signature,
    remove_file,
    remove_tree,
)

logger = logging.getLogger(__name__)

Rasterizer = Callable[[str, str], Sequence[PageImage]]
Recognizer = Callable[[PageImage], PageText]


class _Run:
    """State tracking for one ingestion request."""

    __slots__ = ("request_id", "states", "started")

    def __init__(self) -> None:
        self.request_id = uuid4().hex
        self.states: list[PipelineState] = [PipelineState.RECEIVED]
        self.started = time.monotonic()

    @property
    def state(self) -> PipelineState:
        return self.states[-1]

    def advance(self, state: PipelineState) -> None:
        self.states.append(state)
        logger.info("[%s] %s", self.request_id, state.value)

    def fail(self, exc: Exception) -> None:
        failed_at = self.state.value
        if isinstance(exc, PipelineError):
            exc.failed_at = failed_at
        self.states.append(PipelineState.FAILED)
        logger.warning(
            "[%s] failed after %s: %s: %s",
            self.request_id, failed_at, type(exc).__name__, exc,
        )


class IngestionPipeline:
    """Turns one uploaded PDF into an ordered list of paragraphs.

    ``rasterizer`` and ``recognizer`` default to the poppler and Tesseract
    adapters. OCR calls share one bounded thread pool across requests.
    """

    def __init__(
        self,
        rasterizer: Rasterizer | None = None,
        recognizer: Recognizer | None = None,
        scratch_root: str | None = None,
        max_workers: int | None = None,
        drop_empty: bool | None = None,
    ) -> None:
        self._rasterize = rasterizer or rasterize_pdf
        self._recognize = recognizer or recognize_page
        self.scratch_root = scratch_root or config.SCRATCH_ROOT
        self.max_workers = max_workers or config.OCR_WORKERS
        self.drop_empty = config.DROP_EMPTY_PARAGRAPHS if drop_empty is None else drop_empty
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="pdfqa-ocr",
        )

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self, document: UploadedDocument) -> IngestionResult:
        """Run the whole pipeline for *document* and clean up afterwards."""
        run = _Run()
        scratch_dir: str | None = None
        try:
            self._validate(document)
            run.advance(PipelineState.VALIDATED)

            os.makedirs(self.scratch_root, exist_ok=True)
            scratch_dir = tempfile.mkdtemp(
                prefix=f"pdfqa-{run.request_id}-", dir=self.scratch_root,
            )
            pages = self._rasterize_pages(document.path, scratch_dir)
            run.advance(PipelineState.RASTERIZED)

            texts = self._recognize_all(pages)
            run.advance(PipelineState.RECOGNIZED)

            paragraphs = split_paragraphs(join_pages(texts), drop_empty=self.drop_empty)
            run.advance(PipelineState.SEGMENTED)

            run.advance(PipelineState.COMPLETED)
            logger.info(
                "[%s] %d page(s) -> %d paragraph(s) in %.2fs",
                run.request_id, len(pages), len(paragraphs),
                time.monotonic() - run.started,
            )
            return IngestionResult(
                request_id=run.request_id,
                page_count=len(pages),
                paragraphs=paragraphs,
                states=list(run.states),
            )
        except Exception as exc:
            run.fail(exc)
            raise
        finally:
            self._cleanup(run.request_id, document, scratch_dir)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    @staticmethod
    def _validate(document: UploadedDocument) -> None:
        try:
            valid = has_pdf_signature(document.path)
        except OSError as exc:
            raise InvalidFormatError(f"Uploaded file is unreadable: {exc}") from exc
        if not valid:
            raise InvalidFormatError(INVALID_FORMAT_MESSAGE)

    def _rasterize_pages(self, pdf_path: str, scratch_dir: str) -> list[PageImage]:
        try:
            pages = list(self._rasterize(pdf_path, scratch_dir))
        except PipelineError:
            raise
        except Exception as exc:
            raise ConversionFailedError(f"PDF rasterization failed: {exc}") from exc
        if not pages:
            raise ConversionFailedError("PDF rasterization produced no pages.")
        return sorted(pages, key=lambda page: page.page_number)

    def _recognize_all(self, pages: list[PageImage]) -> list[str]:
        """OCR every page concurrently; return texts in page order."""
        futures: dict[Future, PageImage] = {
            self._executor.submit(self._recognize, page): page for page in pages
        }
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)

        failed = sorted(
            (future for future in done if future.exception() is not None),
            key=lambda future: futures[future].page_number,
        )
        if failed:
            for future in pending:
                future.cancel()
            # Let pages already running finish before their files are removed.
            wait(pending)
            first = failed[0]
            page = futures[first]
            error = first.exception()
            if isinstance(error, OcrFailedError):
                raise error
            raise OcrFailedError(
                f"OCR failed on page {page.page_number}: {error}",
                page_number=page.page_number,
            ) from error

        texts = {futures[future].page_number: future.result().text for future in done}
        return [texts[number] for number in sorted(texts)]

    @staticmethod
    def _cleanup(request_id: str, document: UploadedDocument, scratch_dir: str | None) -> None:
        upload_removed = remove_file(document.path)
        scratch_removed = remove_tree(scratch_dir)
        if upload_removed and scratch_removed:
            logger.debug("[%s] cleaned up upload and scratch directory", request_id)
        else:
            logger.warning(
                "[%s] cleanup incomplete (upload_removed=%s scratch_removed=%s)",
                request_id, upload_removed, scratch_removed,
            )
