"""REST API routes for the ingestion service.

All endpoints are under /api/v1. Routes reach the pipeline, store and
settings through app.state, which the lifespan handler (or a test
fixture) populates. Error bodies use {"error": ...} rather than
FastAPI's {"detail": ...} envelope.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import JSONResponse

from bulkingest.db.store import StoreError
from bulkingest.ingestion.pipeline import IngestionError
from bulkingest.ingestion.stats import IngestionStats
from bulkingest.uploads import discard_upload, is_csv_upload, save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")

NO_FILE_ERROR = "No se recibió ningún archivo"
NOT_CSV_ERROR = "El archivo debe ser un CSV"
UPLOAD_OK_MESSAGE = "Archivo procesado exitosamente"
UPLOAD_FAILED_ERROR = "Error interno del servidor al procesar el archivo"


def _get_state(request: Request) -> Any:
    """Get app state (pipeline, store, settings)."""
    return request.app.state


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# -- Upload endpoint ----------------------------------------------------------

@router.post("/records/upload")
async def upload_records(
    request: Request,
    file: UploadFile | None = File(None),
) -> JSONResponse:
    """Ingest an uploaded CSV file into the records table.

    The file is streamed to the upload directory, run through the
    ingestion pipeline and deleted again whatever the outcome.
    """
    if file is None:
        return _error(400, NO_FILE_ERROR)
    if not is_csv_upload(file.filename, file.content_type):
        return _error(400, NOT_CSV_ERROR)

    state = _get_state(request)
    settings = state.settings
    path: Path | None = None
    try:
        path = await save_upload(file, Path(settings.UPLOAD_DIR), settings.READ_CHUNK_SIZE)
        stats = await state.pipeline.run(path)
    except IngestionError as exc:
        return _upload_failed(exc, exc.stats)
    except OSError as exc:
        logger.error("Could not store upload %s: %s", file.filename, exc)
        return _upload_failed(exc, IngestionStats())
    except Exception as exc:
        logger.error("Upload %s failed: %r", file.filename, exc)
        return _upload_failed(exc, IngestionStats())
    finally:
        if path is not None:
            discard_upload(path)

    return JSONResponse(
        status_code=200,
        content={"message": UPLOAD_OK_MESSAGE, "stats": stats.to_response()},
    )


def _upload_failed(exc: Exception, stats: IngestionStats) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": UPLOAD_FAILED_ERROR,
            "details": str(exc),
            "stats": stats.to_partial(),
        },
    )


# -- Listing endpoint ---------------------------------------------------------

@router.get("/records", response_model=None)
async def list_records(request: Request) -> list[dict[str, Any]] | JSONResponse:
    """Return a sample of stored records in storage order."""
    state = _get_state(request)
    try:
        return state.store.find(limit=state.settings.LIST_LIMIT)
    except StoreError as exc:
        return JSONResponse(
            status_code=500,
            content={"error": str(exc), "type": type(exc.__cause__ or exc).__name__},
        )
