"""Page rasterizer: poppler (via pdf2image) renders one PNG per page."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pdf2image import convert_from_path, pdfinfo_from_path

from . import config
from .schema import PageImage
from .utils import ConversionFailedError, guard_max_pages

logger = logging.getLogger(__name__)

# pdftoppm names pages "<prefix>-<zero padded page>.png".
_PAGE_INDEX_RE = re.compile(r"-(\d+)\.png$", re.IGNORECASE)


def page_index(path: str | Path) -> int:
    """Return the page number embedded in a rendered file name."""

    match = _PAGE_INDEX_RE.search(Path(path).name)
    if match is None:
        raise ConversionFailedError(f"Cannot determine page number of {Path(path).name}")
    return int(match.group(1))


def get_pdf_page_count(pdf_path: Path, poppler_path: str | None = None) -> int:
    """Return the number of pages in a PDF."""

    try:
        info = pdfinfo_from_path(str(pdf_path), poppler_path=poppler_path)
        return int(info.get("Pages", 0))
    except Exception as exc:
        raise ConversionFailedError(f"Failed to read PDF metadata: {exc}") from exc


def rasterize_pdf(
    pdf_path: str | Path,
    scratch_dir: str | Path,
    dpi: int | None = None,
    max_pages: int | None = None,
    timeout: int | None = None,
    poppler_path: str | None = None,
) -> list[PageImage]:
    """Render every page of *pdf_path* as PNG into *scratch_dir*.

    Files share the PDF's stem as prefix. The returned list is ordered by
    the page number in each file name, not by directory listing order.
    """

    pdf_path = Path(pdf_path)
    scratch_dir = Path(scratch_dir)
    poppler_path = poppler_path or config.POPPLER_PATH
    limit = max_pages if max_pages is not None else config.MAX_PAGES

    page_count = get_pdf_page_count(pdf_path, poppler_path=poppler_path)
    guard_max_pages(page_count, limit)

    try:
        paths = convert_from_path(
            str(pdf_path),
            dpi=dpi or config.RASTER_DPI,
            output_folder=str(scratch_dir),
            fmt="png",
            output_file=pdf_path.stem,
            paths_only=True,
            timeout=timeout or config.RASTER_TIMEOUT_SEC,
            poppler_path=poppler_path,
        )
    except Exception as exc:
        raise ConversionFailedError(f"PDF rasterization failed: {exc}") from exc

    if not paths:
        raise ConversionFailedError("PDF rasterization produced no pages.")

    pages = sorted(
        (PageImage(page_number=page_index(p), path=str(p)) for p in paths),
        key=lambda page: page.page_number,
    )
    logger.info("Rasterized %s into %d page(s) at %s", pdf_path.name, len(pages), scratch_dir)
    return pages
