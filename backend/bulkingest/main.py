"""FastAPI application for the bulk CSV ingestion service.

Wires together the persistence layer, the ingestion pipeline and the API
routes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bulkingest.config import Settings
from bulkingest.db.sqlite import SQLiteDB
from bulkingest.db.store import RecordStore, WriteConcern
from bulkingest.ingestion.pipeline import IngestionPipeline
from bulkingest.ingestion.sink import BatchSink
from bulkingest.security import secure_directory, secure_file

settings = Settings()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler.

    Opens the database and builds the pipeline on startup, closes the
    database on shutdown.
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Ensure data and upload directories exist with proper permissions
    data_dir = Path(settings.DATABASE_DIR)
    upload_dir = Path(settings.UPLOAD_DIR)
    secure_directory(data_dir)
    secure_directory(upload_dir)

    db_path = str(data_dir / "records.db")
    db = SQLiteDB(db_path)
    secure_file(Path(db_path))

    store = RecordStore(db)
    sink = BatchSink(store, WriteConcern(journal=settings.SYNCHRONOUS_WRITES))
    pipeline = IngestionPipeline(
        sink,
        batch_size=settings.BATCH_SIZE,
        chunk_size=settings.READ_CHUNK_SIZE,
        max_row_bytes=settings.MAX_ROW_BYTES,
    )

    # Store on app.state for access in routes
    app.state.settings = settings
    app.state.db = db
    app.state.store = store
    app.state.pipeline = pipeline
    logger.info("Records database at %s, batch size %d", db_path, settings.BATCH_SIZE)

    yield

    db.close()


app = FastAPI(
    title="Bulk CSV Ingestion",
    description="Streams uploaded CSV files into the records store in batches",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from bulkingest.api.routes import router as api_router

app.include_router(api_router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
