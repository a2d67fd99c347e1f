"""Temporary storage for uploaded files.

Files live only for the duration of one request and are written with
owner-only permissions.
"""

from __future__ import annotations

import uuid
from pathlib import Path

from fastapi import UploadFile

from bulkingest.security import secure_directory, secure_file

CSV_CONTENT_TYPE = "text/csv"
CSV_SUFFIX = ".csv"


def is_csv_upload(filename: str | None, content_type: str | None) -> bool:
    """Accept a declared text/csv media type or a .csv file name."""
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type == CSV_CONTENT_TYPE:
        return True
    return (filename or "").lower().endswith(CSV_SUFFIX)


async def save_upload(upload: UploadFile, directory: Path, chunk_size: int = 64 * 1024) -> Path:
    """Stream an uploaded file to a uniquely named file in `directory`.

    The client-supplied name is never used on disk. A partially written
    file is removed before the error propagates.
    """
    secure_directory(directory)
    path = directory / f"{uuid.uuid4().hex}{CSV_SUFFIX}"
    try:
        with path.open("wb") as fh:
            while chunk := await upload.read(chunk_size):
                fh.write(chunk)
        secure_file(path)
    except BaseException:
        discard_upload(path)
        raise
    return path


def discard_upload(path: Path) -> None:
    """Delete a stored upload if it still exists."""
    if path.exists():
        path.unlink()
