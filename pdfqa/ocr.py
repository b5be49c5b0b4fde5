"""Tesseract-based OCR for one rasterized page."""

from __future__ import annotations

import logging
from pathlib import Path

import pytesseract
from PIL import Image, ImageOps

from . import config
from .schema import PageImage, PageText
from .utils import OcrFailedError

logger = logging.getLogger(__name__)

OCR_OEM = 1
OCR_PSM = 3
OCR_AUTOCONTRAST_CUTOFF = 1

if config.TESSERACT_CMD:
    pytesseract.pytesseract.tesseract_cmd = config.TESSERACT_CMD


def _build_config(psm: int = OCR_PSM) -> str:
    return f"--oem {OCR_OEM} --psm {psm}"


def preprocess_image(image: Image.Image, autocontrast_cutoff: int = OCR_AUTOCONTRAST_CUTOFF) -> Image.Image:
    """Grayscale plus autocontrast; enough for clean scans."""

    gray = image.convert("L")
    return ImageOps.autocontrast(gray, cutoff=autocontrast_cutoff)


def recognize_image(
    image_path: str | Path,
    lang: str | None = None,
    timeout: int | None = None,
    preprocess: bool | None = None,
) -> str:
    """Run Tesseract over one image file and return the raw text."""

    use_preprocess = config.OCR_PREPROCESS if preprocess is None else preprocess
    with Image.open(image_path) as image:
        image.load()
        if use_preprocess:
            image = preprocess_image(image)
        return pytesseract.image_to_string(
            image,
            lang=lang or config.OCR_LANG,
            config=_build_config(),
            timeout=timeout or config.OCR_TIMEOUT_SEC,
        )


def recognize_page(
    page: PageImage,
    lang: str | None = None,
    timeout: int | None = None,
) -> PageText:
    """OCR one page; any failure becomes ``OcrFailedError`` for that page."""

    try:
        text = recognize_image(page.path, lang=lang, timeout=timeout)
    except Exception as exc:
        raise OcrFailedError(
            f"OCR failed on page {page.page_number}: {exc}",
            page_number=page.page_number,
        ) from exc
    logger.debug("OCR page %d: %d chars", page.page_number, len(text))
    return PageText(page_number=page.page_number, text=text)
