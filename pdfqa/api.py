"""FastAPI app: PDF upload -> paragraphs, and question answering over them."""

from __future__ import annotations

import logging
import time
from functools import lru_cache

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .answer import AnswerService
from .pipeline import IngestionPipeline
from .schema import ErrorResponse, SearchRequest, SearchResponse, UploadResponse
from .upload import receive_upload
from .utils import (
    INVALID_FORMAT_MESSAGE,
    InvalidFormatError,
    PageLimitExceededError,
    PipelineError,
    SearchFailedError,
    check_binary_exists,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="PDF OCR Search")
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_pipeline() -> IngestionPipeline:
    return IngestionPipeline()


@lru_cache(maxsize=1)
def get_answer_service() -> AnswerService:
    return AnswerService(
        api_key=config.OPENAI_API_KEY,
        model=config.LLM_MODEL,
        base_url=config.OPENAI_BASE_URL,
        timeout=config.LLM_TIMEOUT_SEC,
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
@app.on_event("startup")
def _startup() -> None:
    config.configure_logging()
    config.log_startup_config()


@app.on_event("shutdown")
def _shutdown() -> None:
    if get_pipeline.cache_info().currsize:
        get_pipeline().shutdown()


# ---------------------------------------------------------------------------
# Access log and global error handlers
# ---------------------------------------------------------------------------
@app.middleware("http")
async def _access_log(request: Request, call_next):
    t0 = time.monotonic()
    try:
        response = await call_next(request)
    except Exception:
        dt = int((time.monotonic() - t0) * 1000)
        logger.error("%s %s -> 500 %dms", request.method, request.url.path, dt)
        raise
    dt = int((time.monotonic() - t0) * 1000)
    logger.info("%s %s -> %d %dms", request.method, request.url.path, response.status_code, dt)
    return response


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request, exc: StarletteHTTPException):  # noqa: ARG001
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request, exc: RequestValidationError):  # noqa: ARG001
    return _error(400, f"Invalid request: {exc.errors()}")


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request, exc: Exception):  # noqa: ARG001
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, str(exc) or "Internal server error")


# ---------------------------------------------------------------------------
# Pages / health
# ---------------------------------------------------------------------------
@app.get("/", response_class=PlainTextResponse)
async def index():
    return "OCR Server is running"


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "binaries": {
            "pdftoppm": check_binary_exists("pdftoppm"),
            "tesseract": check_binary_exists("tesseract"),
        },
    }


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------
@app.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_endpoint(
    file: UploadFile = File(...),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Turn an uploaded PDF into paragraphs."""
    try:
        document = await receive_upload(file)
        result = await run_in_threadpool(pipeline.run, document)
    except InvalidFormatError:
        return _error(400, INVALID_FORMAT_MESSAGE)
    except PageLimitExceededError as exc:
        return _error(413, str(exc))
    except (PipelineError, OSError) as exc:
        logger.error("Error processing PDF: %s", exc, exc_info=exc.__cause__ is not None)
        return _error(500, f"Failed to process PDF: {exc}")
    return UploadResponse(paragraphs=result.paragraphs)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------
@app.post(
    "/search",
    response_model=SearchResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def search_endpoint(
    body: SearchRequest,
    service: AnswerService = Depends(get_answer_service),
):
    """Answer ``query`` from the paragraphs the caller got from /upload."""
    try:
        answer = service.answer(body.query, body.paragraphs)
    except SearchFailedError as exc:
        logger.error(
            "Error processing search (%s): %s", exc.kind, exc.__cause__ or exc,
        )
        return _error(500, f"Failed to process search: {exc}")
    return SearchResponse(question=body.query, answer=answer)
