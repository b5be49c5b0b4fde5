"""Pydantic models for pipeline records and HTTP bodies."""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class PipelineState(str, Enum):
    """States an ingestion run moves through."""

    RECEIVED = "received"
    VALIDATED = "validated"
    RASTERIZED = "rasterized"
    RECOGNIZED = "recognized"
    SEGMENTED = "segmented"
    COMPLETED = "completed"
    FAILED = "failed"


class UploadedDocument(BaseModel):
    """A received upload persisted at a unique temporary path."""

    path: str
    signature: bytes = b""
    filename: str | None = None  # client-supplied name, informational only


class PageImage(BaseModel):
    """One rasterized page inside a scratch directory."""

    page_number: int
    path: str


class PageText(BaseModel):
    """Recognized text for one page."""

    page_number: int
    text: str


class IngestionResult(BaseModel):
    """Outcome of one successful ingestion run."""

    request_id: str
    page_count: int
    paragraphs: List[str] = Field(default_factory=list)
    states: List[PipelineState] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# HTTP bodies
# ---------------------------------------------------------------------------
class UploadResponse(BaseModel):
    success: bool = True
    paragraphs: List[str]


class SearchRequest(BaseModel):
    query: str
    paragraphs: List[str]


class SearchResponse(BaseModel):
    success: bool = True
    question: str
    answer: str


class ErrorResponse(BaseModel):
    error: str
