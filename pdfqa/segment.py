"""Paragraph segmentation for recognized text."""

from __future__ import annotations

import re

# A blank line under any line-ending convention.
_BLANK_LINE_RE = re.compile(r"\r?\n\r?\n")

PAGE_SEPARATOR = "\n\n"


def join_pages(page_texts: list[str]) -> str:
    """Join page texts (already in page order) with a blank line."""

    return PAGE_SEPARATOR.join(page_texts)


def split_paragraphs(text: str, drop_empty: bool = False) -> list[str]:
    """Split *text* on blank lines and trim each paragraph.

    Segments that are empty after trimming are kept unless *drop_empty*
    is set, so ``"A\\n\\n\\n\\nB"`` gives ``["A", "", "B"]`` by default.
    """

    paragraphs = [segment.strip() for segment in _BLANK_LINE_RE.split(text)]
    if drop_empty:
        return [paragraph for paragraph in paragraphs if paragraph]
    return paragraphs
