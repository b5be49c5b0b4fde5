"""Command-line interface: serve the API, or ingest/ask against a local PDF."""

from __future__ import annotations

import argparse
import json
import sys

from . import config
from .answer import AnswerService
from .pipeline import IngestionPipeline
from .upload import stage_local_file
from .utils import PipelineError, SearchFailedError


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""

    parser = argparse.ArgumentParser(
        prog="pdfqa", description="OCR a PDF into paragraphs and ask questions about it.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help=f"Logging level (default: {config.LOG_LEVEL}).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0).")
    serve.add_argument(
        "--port", type=int, default=config.PORT, help=f"Port (default: {config.PORT}).",
    )

    ingest = sub.add_parser("ingest", help="Print the paragraphs of a PDF as JSON.")
    ingest.add_argument("pdf_path", help="Path to the PDF file.")
    ingest.add_argument(
        "--workers",
        type=int,
        default=None,
        help=f"Concurrent OCR workers (default: {config.OCR_WORKERS}).",
    )

    ask = sub.add_parser("ask", help="Ingest a PDF, then answer one question about it.")
    ask.add_argument("pdf_path", help="Path to the PDF file.")
    ask.add_argument("question", help="Question to answer from the PDF's content.")
    ask.add_argument(
        "--model", default=config.LLM_MODEL, help=f"Model (default: {config.LLM_MODEL}).",
    )
    return parser


def _ingest(pdf_path: str, workers: int | None = None) -> list[str]:
    pipeline = IngestionPipeline(max_workers=workers)
    try:
        document = stage_local_file(pdf_path)
        return pipeline.run(document).paragraphs
    finally:
        pipeline.shutdown()


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""

    args = build_parser().parse_args(argv)
    config.configure_logging(args.log_level)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("pdfqa.api:app", host=args.host, port=args.port)
        return 0

    try:
        if args.command == "ingest":
            paragraphs = _ingest(args.pdf_path, workers=args.workers)
            print(json.dumps({"success": True, "paragraphs": paragraphs}, indent=2))
            return 0

        paragraphs = _ingest(args.pdf_path)
        service = AnswerService(
            api_key=config.OPENAI_API_KEY,
            model=args.model,
            base_url=config.OPENAI_BASE_URL,
            timeout=config.LLM_TIMEOUT_SEC,
        )
        answer = service.answer(args.question, paragraphs)
        print(json.dumps({"success": True, "question": args.question, "answer": answer}, indent=2))
        return 0
    except (PipelineError, SearchFailedError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
