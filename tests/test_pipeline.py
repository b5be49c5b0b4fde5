"""Tests for pdfqa.pipeline with fake rasterizer and OCR adapters."""

from __future__ import annotations

import os
import shutil
import tempfile
import threading
import time
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from pdfqa.pipeline import IngestionPipeline
from pdfqa.schema import PageImage, PageText, PipelineState, UploadedDocument
from pdfqa.utils import (
    ConversionFailedError,
    InvalidFormatError,
    OcrFailedError,
    PageLimitExceededError,
)


def fake_rasterizer(page_count: int, calls: list | None = None):
    """Write one PNG per page into the scratch dir, returned in reverse order."""

    def _rasterize(pdf_path: str, scratch_dir: str) -> list[PageImage]:
        if calls is not None:
            calls.append((pdf_path, scratch_dir))
        stem = Path(pdf_path).stem
        pages = []
        for number in range(page_count, 0, -1):
            path = os.path.join(scratch_dir, f"{stem}0001-{number}.png")
            Path(path).write_bytes(b"\x89PNG")
            pages.append(PageImage(page_number=number, path=path))
        return pages

    return _rasterize


def slow_first_recognizer(page_count: int):
    """Earlier pages finish later, so completion order is the reverse of page order."""

    def _recognize(page: PageImage) -> PageText:
        time.sleep(0.02 * (page_count - page.page_number + 1))
        return PageText(page_number=page.page_number, text=f"Page {page.page_number}")

    return _recognize


class PipelineTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.scratch_root = tempfile.mkdtemp()
        self.upload_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.scratch_root, ignore_errors=True)
        self.addCleanup(shutil.rmtree, self.upload_dir, ignore_errors=True)

    def make_document(self, data: bytes = b"%PDF-1.4\n%fake") -> UploadedDocument:
        fd, path = tempfile.mkstemp(suffix=".pdf", dir=self.upload_dir)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        return UploadedDocument(path=path, signature=data[:4], filename="doc.pdf")

    def make_pipeline(self, **kwargs) -> IngestionPipeline:
        kwargs.setdefault("scratch_root", self.scratch_root)
        kwargs.setdefault("max_workers", 8)
        pipeline = IngestionPipeline(**kwargs)
        self.addCleanup(pipeline.shutdown)
        return pipeline

    def assert_no_leftovers(self, document: UploadedDocument) -> None:
        self.assertFalse(os.path.exists(document.path))
        self.assertEqual(os.listdir(self.scratch_root), [])


class TestSuccessfulRun(PipelineTestCase):
    def test_page_order_independent_of_completion_order(self) -> None:
        completed: list[int] = []
        recognize = slow_first_recognizer(5)

        def _tracking(page: PageImage) -> PageText:
            result = recognize(page)
            completed.append(page.page_number)
            return result

        pipeline = self.make_pipeline(rasterizer=fake_rasterizer(5), recognizer=_tracking)
        result = pipeline.run(self.make_document())

        self.assertNotEqual(completed, [1, 2, 3, 4, 5])
        self.assertEqual(result.paragraphs, [f"Page {n}" for n in range(1, 6)])
        self.assertEqual(result.page_count, 5)

    def test_states_and_cleanup(self) -> None:
        pipeline = self.make_pipeline(
            rasterizer=fake_rasterizer(2), recognizer=slow_first_recognizer(2),
        )
        document = self.make_document()
        result = pipeline.run(document)
        self.assertEqual(
            result.states,
            [
                PipelineState.RECEIVED,
                PipelineState.VALIDATED,
                PipelineState.RASTERIZED,
                PipelineState.RECOGNIZED,
                PipelineState.SEGMENTED,
                PipelineState.COMPLETED,
            ],
        )
        self.assertTrue(result.request_id)
        self.assert_no_leftovers(document)

    def test_scratch_dir_is_unique_per_run(self) -> None:
        calls: list = []
        pipeline = self.make_pipeline(
            rasterizer=fake_rasterizer(1, calls), recognizer=slow_first_recognizer(1),
        )
        pipeline.run(self.make_document())
        pipeline.run(self.make_document())
        first, second = calls[0][1], calls[1][1]
        self.assertNotEqual(first, second)
        self.assertEqual(os.path.dirname(first), self.scratch_root)

    def test_pages_split_into_paragraphs(self) -> None:
        texts = {1: "Title\n\n  Intro line\nmore  ", 2: "Body\r\n\r\nEnd"}

        def _recognize(page: PageImage) -> PageText:
            return PageText(page_number=page.page_number, text=texts[page.page_number])

        pipeline = self.make_pipeline(rasterizer=fake_rasterizer(2), recognizer=_recognize)
        result = pipeline.run(self.make_document())
        self.assertEqual(result.paragraphs, ["Title", "Intro line\nmore", "Body", "End"])

    def test_empty_paragraphs(self) -> None:
        def _recognize(page: PageImage) -> PageText:
            return PageText(page_number=page.page_number, text="A\n\n\n\nB")

        dropping = self.make_pipeline(
            rasterizer=fake_rasterizer(1), recognizer=_recognize, drop_empty=True,
        )
        self.assertEqual(dropping.run(self.make_document()).paragraphs, ["A", "B"])

        keeping = self.make_pipeline(
            rasterizer=fake_rasterizer(1), recognizer=_recognize, drop_empty=False,
        )
        self.assertEqual(keeping.run(self.make_document()).paragraphs, ["A", "", "B"])

    def test_concurrency_is_bounded(self) -> None:
        lock = threading.Lock()
        active = [0]
        peak = [0]

        def _recognize(page: PageImage) -> PageText:
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            time.sleep(0.02)
            with lock:
                active[0] -= 1
            return PageText(page_number=page.page_number, text=str(page.page_number))

        pipeline = self.make_pipeline(
            rasterizer=fake_rasterizer(8), recognizer=_recognize, max_workers=2,
        )
        result = pipeline.run(self.make_document())
        self.assertLessEqual(peak[0], 2)
        self.assertEqual(result.paragraphs, [str(n) for n in range(1, 9)])


class TestFailures(PipelineTestCase):
    def test_invalid_signature_skips_rasterize_and_ocr(self) -> None:
        rasterizer = MagicMock()
        recognizer = MagicMock()
        pipeline = self.make_pipeline(rasterizer=rasterizer, recognizer=recognizer)
        document = self.make_document(b"<html>not a pdf</html>")
        with self.assertRaises(InvalidFormatError) as ctx:
            pipeline.run(document)
        self.assertEqual(ctx.exception.failed_at, "received")
        rasterizer.assert_not_called()
        recognizer.assert_not_called()
        self.assert_no_leftovers(document)

    def test_missing_upload_is_invalid(self) -> None:
        pipeline = self.make_pipeline(rasterizer=MagicMock(), recognizer=MagicMock())
        document = UploadedDocument(path=os.path.join(self.upload_dir, "gone.pdf"))
        with self.assertRaises(InvalidFormatError):
            pipeline.run(document)

    def test_conversion_failure_cleans_up(self) -> None:
        def _rasterize(pdf_path: str, scratch_dir: str):
            Path(scratch_dir, "partial0001-1.png").write_bytes(b"\x89PNG")
            raise RuntimeError("poppler exploded")

        recognizer = MagicMock()
        pipeline = self.make_pipeline(rasterizer=_rasterize, recognizer=recognizer)
        document = self.make_document()
        with self.assertRaises(ConversionFailedError) as ctx:
            pipeline.run(document)
        self.assertIn("poppler exploded", str(ctx.exception))
        self.assertEqual(ctx.exception.failed_at, "validated")
        recognizer.assert_not_called()
        self.assert_no_leftovers(document)

    def test_rasterizer_errors_propagate_unchanged(self) -> None:
        rasterizer = MagicMock(side_effect=PageLimitExceededError("too many"))
        pipeline = self.make_pipeline(rasterizer=rasterizer, recognizer=MagicMock())
        document = self.make_document()
        with self.assertRaises(PageLimitExceededError):
            pipeline.run(document)
        self.assert_no_leftovers(document)

    def test_no_pages_is_conversion_failure(self) -> None:
        pipeline = self.make_pipeline(rasterizer=MagicMock(return_value=[]), recognizer=MagicMock())
        document = self.make_document()
        with self.assertRaises(ConversionFailedError):
            pipeline.run(document)
        self.assert_no_leftovers(document)

    def test_one_page_ocr_failure_fails_request(self) -> None:
        def _recognize(page: PageImage) -> PageText:
            if page.page_number == 2:
                raise OcrFailedError("OCR failed on page 2: unreadable", page_number=2)
            return PageText(page_number=page.page_number, text="ok")

        pipeline = self.make_pipeline(rasterizer=fake_rasterizer(4), recognizer=_recognize)
        document = self.make_document()
        with self.assertRaises(OcrFailedError) as ctx:
            pipeline.run(document)
        self.assertEqual(ctx.exception.page_number, 2)
        self.assertEqual(ctx.exception.failed_at, "rasterized")
        self.assert_no_leftovers(document)

    def test_unexpected_ocr_error_is_wrapped(self) -> None:
        def _recognize(page: PageImage) -> PageText:
            raise ValueError("bad image")

        pipeline = self.make_pipeline(rasterizer=fake_rasterizer(1), recognizer=_recognize)
        document = self.make_document()
        with self.assertRaises(OcrFailedError) as ctx:
            pipeline.run(document)
        self.assertIsInstance(ctx.exception.__cause__, ValueError)
        self.assertEqual(ctx.exception.page_number, 1)
        self.assert_no_leftovers(document)

    def test_outstanding_pages_cancelled_after_failure(self) -> None:
        calls: list[int] = []

        def _recognize(page: PageImage) -> PageText:
            calls.append(page.page_number)
            if page.page_number == 1:
                raise OcrFailedError("OCR failed on page 1", page_number=1)
            time.sleep(0.1)
            return PageText(page_number=page.page_number, text="ok")

        pipeline = self.make_pipeline(rasterizer=fake_rasterizer(6), recognizer=_recognize, max_workers=1)
        document = self.make_document()
        with self.assertRaises(OcrFailedError):
            pipeline.run(document)
        self.assertLess(len(calls), 6)
        self.assert_no_leftovers(document)


class TestCleanupFailure(PipelineTestCase):
    def test_cleanup_error_does_not_mask_result(self) -> None:
        pipeline = self.make_pipeline(
            rasterizer=fake_rasterizer(1), recognizer=slow_first_recognizer(1),
        )
        with patch("pdfqa.utils.shutil.rmtree", side_effect=PermissionError("busy")):
            with self.assertLogs("pdfqa.pipeline", level="WARNING"):
                result = pipeline.run(self.make_document())
        self.assertEqual(result.paragraphs, ["Page 1"])

    def test_cleanup_error_does_not_mask_failure(self) -> None:
        rasterizer = MagicMock(side_effect=ConversionFailedError("broken"))
        pipeline = self.make_pipeline(rasterizer=rasterizer, recognizer=MagicMock())
        with patch("pdfqa.utils.shutil.rmtree", side_effect=PermissionError("busy")):
            with self.assertRaises(ConversionFailedError):
                pipeline.run(self.make_document())


if __name__ == "__main__":
    unittest.main()
