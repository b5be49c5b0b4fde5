"""Upload receiver: persist one upload to a unique temp path and sniff it."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from fastapi import HTTPException, UploadFile

from . import config
from .schema import UploadedDocument
from .utils import (
    INVALID_FORMAT_MESSAGE,
    PDF_SIGNATURE,
    InvalidFormatError,
    read_signature,
    remove_file,
)

logger = logging.getLogger(__name__)


def _new_temp_file(upload_dir: str | None):
    target = upload_dir or config.UPLOAD_DIR
    os.makedirs(target, exist_ok=True)
    return tempfile.NamedTemporaryFile(
        delete=False, prefix="upload-", suffix=".pdf", dir=target,
    )


def _sniff(path: str, filename: str | None) -> UploadedDocument:
    """Check the PDF signature; remove the file and raise on mismatch."""
    signature = read_signature(path)
    if signature != PDF_SIGNATURE:
        remove_file(path)
        logger.info("Rejected upload %r: signature %r", filename, signature)
        raise InvalidFormatError(INVALID_FORMAT_MESSAGE)
    return UploadedDocument(path=path, signature=signature, filename=filename)


async def receive_upload(
    file: UploadFile,
    upload_dir: str | None = None,
    max_bytes: int | None = None,
) -> UploadedDocument:
    """Stream *file* to a temp file in chunks, enforce the size limit, sniff it.

    Raises ``HTTPException`` (400 empty, 413 too large) or
    ``InvalidFormatError``; in every failure case the temp file is gone.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided.")
    limit = max_bytes if max_bytes is not None else config.MAX_FILE_SIZE_BYTES
    total = 0
    tmp = _new_temp_file(upload_dir)
    try:
        while True:
            chunk = await file.read(config.UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            if total > limit:
                raise HTTPException(
                    status_code=413,
                    detail=f"File too large (limit {limit // (1024 * 1024)} MB).",
                )
            tmp.write(chunk)
        tmp.flush()
    except BaseException:
        tmp.close()
        remove_file(tmp.name)
        raise
    finally:
        tmp.close()
    if total == 0:
        remove_file(tmp.name)
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return _sniff(tmp.name, file.filename)


def stage_local_file(path: str | Path, upload_dir: str | None = None) -> UploadedDocument:
    """Copy a local file into the upload area so the pipeline may delete it."""
    source = Path(path).expanduser()
    tmp = _new_temp_file(upload_dir)
    try:
        with open(source, "rb") as handle:
            shutil.copyfileobj(handle, tmp)
    except BaseException:
        tmp.close()
        remove_file(tmp.name)
        raise
    finally:
        tmp.close()
    return _sniff(tmp.name, source.name)
