"""Centralized configuration for limits, adapters and the LLM endpoint.

All env-driven settings live here so there is a single source of truth.
Import from ``pdfqa.config`` in api.py, pipeline.py, etc. Only the API and
CLI layers read the credential; adapters receive their values explicitly.
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int, lo: int = 1, hi: int = 10_000) -> int:
    try:
        return max(lo, min(hi, int(os.environ.get(name, str(default)))))
    except (TypeError, ValueError):
        return default


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or default


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------
PORT: int = _env_int("PORT", default=8080, hi=65_535)
LOG_LEVEL: str = (_env_str("LOG_LEVEL", "INFO") or "INFO").upper()
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in (_env_str("CORS_ORIGINS", "*") or "*").split(",")
    if origin.strip()
]

# ---------------------------------------------------------------------------
# Upload limits and filesystem areas
# ---------------------------------------------------------------------------
MAX_FILE_SIZE_BYTES: int = _env_int(
    "MAX_FILE_SIZE_BYTES", default=20 * 1024 * 1024, lo=1, hi=500 * 1024 * 1024,
)
UPLOAD_CHUNK_SIZE: int = 64 * 1024  # 64 KiB streaming chunks
MAX_PAGES: int = _env_int("MAX_PAGES", default=200, hi=2000)
UPLOAD_DIR: str = _env_str("UPLOAD_DIR", tempfile.gettempdir())
SCRATCH_ROOT: str = _env_str("SCRATCH_ROOT", tempfile.gettempdir())

# ---------------------------------------------------------------------------
# Rasterizer (poppler via pdf2image)
# ---------------------------------------------------------------------------
RASTER_DPI: int = _env_int("RASTER_DPI", default=200, lo=50, hi=1200)
RASTER_TIMEOUT_SEC: int = _env_int("RASTER_TIMEOUT_SEC", default=120, hi=3600)
POPPLER_PATH: str | None = _env_str("POPPLER_PATH")

# ---------------------------------------------------------------------------
# OCR (tesseract via pytesseract)
# ---------------------------------------------------------------------------
OCR_LANG: str = _env_str("OCR_LANG", "eng") or "eng"
OCR_WORKERS: int = _env_int("OCR_WORKERS", default=4, hi=32)
OCR_TIMEOUT_SEC: int = _env_int("OCR_TIMEOUT_SEC", default=60, hi=3600)
OCR_PREPROCESS: bool = _env_bool("OCR_PREPROCESS")
TESSERACT_CMD: str | None = _env_str("TESSERACT_CMD")

# ---------------------------------------------------------------------------
# Paragraphs
# ---------------------------------------------------------------------------
DROP_EMPTY_PARAGRAPHS: bool = _env_bool("DROP_EMPTY_PARAGRAPHS", default=True)

# ---------------------------------------------------------------------------
# LLM completion endpoint
# ---------------------------------------------------------------------------
OPENAI_API_KEY: str | None = _env_str("OPENAI_API_KEY")
OPENAI_BASE_URL: str | None = _env_str("OPENAI_BASE_URL")
LLM_MODEL: str = _env_str("LLM_MODEL", "gpt-4") or "gpt-4"
LLM_TIMEOUT_SEC: int = _env_int("LLM_TIMEOUT_SEC", default=60, hi=600)


def configure_logging(level: str | None = None) -> None:
    """Route all loggers to stdout with one timestamped format."""
    logging.basicConfig(
        level=(level or LOG_LEVEL),
        stream=sys.stdout,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


def log_startup_config() -> None:
    """Log one startup line summarising active configuration."""
    logger.info(
        "pdfqa config: PORT=%d MAX_FILE_SIZE_BYTES=%d MAX_PAGES=%d "
        "RASTER_DPI=%d OCR_LANG=%s OCR_WORKERS=%d OCR_PREPROCESS=%s "
        "DROP_EMPTY_PARAGRAPHS=%s LLM_MODEL=%s LLM_CONFIGURED=%s "
        "SCRATCH_ROOT=%s",
        PORT, MAX_FILE_SIZE_BYTES, MAX_PAGES,
        RASTER_DPI, OCR_LANG, OCR_WORKERS, OCR_PREPROCESS,
        DROP_EMPTY_PARAGRAPHS, LLM_MODEL, bool(OPENAI_API_KEY),
        SCRATCH_ROOT,
    )
