"""Tests for REST API routes: CSV upload and record listing."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from bulkingest.api.routes import router
from bulkingest.config import Settings
from bulkingest.db.sqlite import SQLiteDB
from bulkingest.db.store import RecordStore, StoreError
from bulkingest.ingestion.pipeline import IngestionError, IngestionPipeline
from bulkingest.ingestion.sink import BatchSink
from bulkingest.ingestion.stats import IngestionStats

UPLOAD_URL = "/api/v1/records/upload"
LIST_URL = "/api/v1/records"

HEADER = "id,firstname,lastname,email,email2,profession\n"


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def app_with_state(tmp_path: Path, upload_dir: Path):
    """Create a FastAPI app with test state."""
    app = FastAPI()
    app.include_router(router)

    db = SQLiteDB(str(tmp_path / "test.db"))
    store = RecordStore(db)

    app.state.settings = Settings(UPLOAD_DIR=str(upload_dir), BATCH_SIZE=2)
    app.state.db = db
    app.state.store = store
    app.state.pipeline = IngestionPipeline(BatchSink(store), batch_size=2)

    yield app
    db.close()


@pytest.fixture
def client(app_with_state):
    return TestClient(app_with_state)


def _leftover_files(upload_dir: Path) -> list[Path]:
    if not upload_dir.exists():
        return []
    return list(upload_dir.iterdir())


def _upload(client: TestClient, content: str, filename: str = "data.csv", content_type: str = "text/csv"):
    return client.post(UPLOAD_URL, files={"file": (filename, content.encode("utf-8"), content_type)})


# -- Upload rejections --------------------------------------------------------

class TestUploadRejections:

    def test_no_file(self, client):
        resp = client.post(UPLOAD_URL)
        assert resp.status_code == 400
        assert resp.json() == {"error": "No se recibió ningún archivo"}

    def test_form_without_file_field(self, client):
        resp = client.post(UPLOAD_URL, data={"note": "hello"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "No se recibió ningún archivo"}

    def test_txt_file_rejected(self, client, upload_dir):
        resp = _upload(client, "id,email\n1,a@x.com\n", filename="notes.txt", content_type="text/plain")
        assert resp.status_code == 400
        assert resp.json() == {"error": "El archivo debe ser un CSV"}
        assert _leftover_files(upload_dir) == []

    def test_csv_extension_with_generic_media_type_accepted(self, client):
        resp = _upload(client, HEADER + "1,A,B,a@x.com,,\n", content_type="application/octet-stream")
        assert resp.status_code == 200

    def test_csv_media_type_with_other_extension_accepted(self, client):
        resp = _upload(client, HEADER + "1,A,B,a@x.com,,\n", filename="export.dat")
        assert resp.status_code == 200


# -- Upload success -----------------------------------------------------------

class TestUploadSuccess:

    def test_valid_and_invalid_rows(self, client):
        content = HEADER + (
            "1,Ana,Ruiz,ana@x.com,,nurse\n"
            "2,Bo,Li,bo@x.com,bo2@x.com,\n"
            "3,Cy,Oh,cy@x.com,,\n"
            "4,Di,No,,,\n"
        )
        resp = _upload(client, content)

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Archivo procesado exitosamente"
        stats = body["stats"]
        assert stats["totalRecordsRead"] == 4
        assert stats["processedRecords"] == 3
        assert stats["errorRecords"] == 1
        assert stats["processingTime"].endswith("s")
        assert isinstance(stats["recordsPerSecond"], int)

    def test_duplicate_id_is_not_an_error(self, client):
        _upload(client, HEADER + "1,A,B,a@x.com,,\n2,C,D,c@x.com,,\n")

        resp = _upload(client, HEADER + "3,E,F,e@x.com,,\n1,A,B,a@x.com,,\n")

        assert resp.status_code == 200
        stats = resp.json()["stats"]
        assert stats["totalRecordsRead"] == 2
        assert stats["processedRecords"] == 1
        assert stats["errorRecords"] == 0

    def test_records_are_listed_after_upload(self, client):
        _upload(client, HEADER + "1,Ana,Ruiz,ana@x.com,,nurse\n2,Bo,,bo@x.com,,\n")

        resp = client.get(LIST_URL)

        assert resp.status_code == 200
        rows = resp.json()
        assert [row["id"] for row in rows] == ["1", "2"]
        assert rows[1]["lastname"] == ""
        assert "createdAt" in rows[0]

    def test_temp_file_removed_after_success(self, client, upload_dir):
        resp = _upload(client, HEADER + "1,A,B,a@x.com,,\n")
        assert resp.status_code == 200
        assert _leftover_files(upload_dir) == []


# -- Upload failure -----------------------------------------------------------

class _FailingPipeline:
    """Pipeline stand-in that fails mid-stream."""

    def __init__(self) -> None:
        self.seen_paths: list[Path] = []

    async def run(self, path: Path) -> IngestionStats:
        self.seen_paths.append(path)
        assert path.exists()
        stats = IngestionStats(total_records_read=5, processed_records=3, error_records=1)
        raise IngestionError("read error", stats)


class _CrashingPipeline:
    """Pipeline stand-in that fails with an error outside the ingestion contract."""

    def __init__(self) -> None:
        self.seen_paths: list[Path] = []

    async def run(self, path: Path) -> IngestionStats:
        self.seen_paths.append(path)
        raise RuntimeError("event loop closed")


class _CorruptingStore:
    """Store stand-in whose inserts fail with an error outside the store contract."""

    def insert_many(self, records, write_concern=None):
        raise ValueError("row has no id")


class TestUploadFailure:

    def test_fatal_error_returns_partial_stats(self, app_with_state, client, upload_dir):
        failing = _FailingPipeline()
        app_with_state.state.pipeline = failing

        resp = _upload(client, HEADER + "1,A,B,a@x.com,,\n")

        assert resp.status_code == 500
        assert resp.json() == {
            "error": "Error interno del servidor al procesar el archivo",
            "details": "read error",
            "stats": {"processedRecords": 3, "errorRecords": 1},
        }
        assert len(failing.seen_paths) == 1
        assert not failing.seen_paths[0].exists()
        assert _leftover_files(upload_dir) == []

    def test_unexpected_error_returns_500_json(self, app_with_state, client, upload_dir):
        crashing = _CrashingPipeline()
        app_with_state.state.pipeline = crashing

        resp = _upload(client, HEADER + "1,A,B,a@x.com,,\n")

        assert resp.status_code == 500
        assert resp.json() == {
            "error": "Error interno del servidor al procesar el archivo",
            "details": "event loop closed",
            "stats": {"processedRecords": 0, "errorRecords": 0},
        }
        assert not crashing.seen_paths[0].exists()
        assert _leftover_files(upload_dir) == []

    def test_unexpected_store_error_counts_batch_as_failed(self, app_with_state, client, upload_dir):
        app_with_state.state.pipeline = IngestionPipeline(BatchSink(_CorruptingStore()), batch_size=2)

        resp = _upload(client, HEADER + "1,A,B,a@x.com,,\n")

        assert resp.status_code == 200
        stats = resp.json()["stats"]
        assert stats["totalRecordsRead"] == 1
        assert stats["processedRecords"] == 0
        assert stats["failedRecords"] == 1
        assert _leftover_files(upload_dir) == []


# -- Listing ------------------------------------------------------------------

class _BrokenStore:
    def find(self, limit: int = 10):
        raise StoreError("database is locked")


class TestListRecords:

    def test_empty_store(self, client):
        resp = client.get(LIST_URL)
        assert resp.status_code == 200
        assert resp.json() == []

    def test_limited_to_ten(self, client):
        rows = "".join(f"{i},F,L,u{i}@x.com,,\n" for i in range(15))
        _upload(client, HEADER + rows)

        resp = client.get(LIST_URL)

        assert resp.status_code == 200
        assert len(resp.json()) == 10

    def test_store_failure_returns_500(self, app_with_state, client):
        app_with_state.state.store = _BrokenStore()

        resp = client.get(LIST_URL)

        assert resp.status_code == 500
        assert resp.json() == {"error": "database is locked", "type": "StoreError"}
