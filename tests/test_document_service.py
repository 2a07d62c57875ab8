"""Tests for the document service HTTP surface."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from starlette.datastructures import UploadFile as StarletteUploadFile

from pdf_rag.core.config import settings
from pdf_rag.core.dependencies import services
from pdf_rag.core.exceptions import DatabaseError, StorageError
from pdf_rag.document_service import REQUEST_ERROR_MESSAGE, UPLOAD_ERROR_MESSAGE, app
from pdf_rag.models.document import (
    DocumentStatus,
    IngestionReport,
    ProcessedDocument,
    VectorStats,
)


@pytest.fixture
def ingestion(monkeypatch):
    mock = AsyncMock()
    monkeypatch.setattr(services, "ingestion", mock)
    return mock


@pytest.fixture
def vector_store(monkeypatch):
    mock = AsyncMock()
    mock.stats.return_value = VectorStats(
        total_documents=2, total_chunks=7, completed_documents=1)
    monkeypatch.setattr(services, "vector_db", mock)
    return mock


@pytest.fixture
def registry(monkeypatch):
    mock = AsyncMock()
    monkeypatch.setattr(services, "database", mock)
    return mock


@pytest.fixture
def client():
    # Not entered as a context manager, so the lifespan never connects.
    return TestClient(app)


def test_upload_reports_each_file(client, ingestion, vector_store):
    ingestion.ingest.return_value = IngestionReport(documents=[
        ProcessedDocument(
            document_id=str(uuid4()), filename="good.pdf",
            status=DocumentStatus.COMPLETED, total_pages=2, total_chunks=7),
        ProcessedDocument(
            document_id=str(uuid4()), filename="bad.pdf",
            status=DocumentStatus.FAILED, error="Unreadable PDF"),
    ])

    response = client.post(
        "/api/upload",
        files=[
            ("files", ("good.pdf", b"%PDF-1.4 good", "application/pdf")),
            ("files", ("bad.pdf", b"%PDF-1.4 bad", "application/pdf")),
        ],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["files_processed"] == 1
    assert body["files_failed"] == 1
    assert body["total_chunks"] == 7
    assert [doc["status"] for doc in body["documents"]] == ["completed", "failed"]
    assert body["collection_stats"]["total_chunks"] == 7
    uploads = ingestion.ingest.await_args.args[0]
    assert [upload.filename for upload in uploads] == ["good.pdf", "bad.pdf"]


def test_upload_rejects_non_pdf_before_processing(client, ingestion, vector_store):
    response = client.post(
        "/api/upload",
        files=[("files", ("notes.txt", b"plain text", "text/plain"))],
    )

    assert response.status_code == 400
    assert "not a PDF" in response.json()["detail"]
    ingestion.ingest.assert_not_awaited()


def test_upload_survives_stats_failure(client, ingestion, vector_store):
    ingestion.ingest.return_value = IngestionReport(documents=[])
    vector_store.stats.side_effect = StorageError("qdrant down")

    response = client.post(
        "/api/upload",
        files=[("files", ("a.pdf", b"%PDF-1.4", "application/pdf"))],
    )

    assert response.status_code == 200
    assert response.json()["collection_stats"] is None
    assert response.json()["success"] is False


def test_missing_document_is_404(client, registry):
    registry.get_document.return_value = None

    response = client.get(f"/api/documents/{uuid4()}")

    assert response.status_code == 404


def test_malformed_document_id_is_rejected(client, registry):
    response = client.get("/api/documents/not-a-uuid")

    assert response.status_code == 422
    registry.get_document.assert_not_awaited()


def test_delete_document_cascades(client, ingestion):
    document_id = uuid4()
    ingestion.delete_document.return_value = True

    response = client.delete(f"/api/documents/{document_id}")

    assert response.status_code == 204
    ingestion.delete_document.assert_awaited_once_with(str(document_id))


def test_delete_unknown_document_is_404(client, ingestion):
    ingestion.delete_document.return_value = False

    assert client.delete(f"/api/documents/{uuid4()}").status_code == 404


def test_vector_stats(client, vector_store):
    response = client.get("/api/vectors/stats")

    assert response.status_code == 200
    assert response.json()["stats"] == {
        "total_documents": 2,
        "total_chunks": 7,
        "completed_documents": 1,
    }


def test_clear_vectors(client, vector_store):
    response = client.delete("/api/vectors", params={"action": "clear"})

    assert response.status_code == 200
    vector_store.clear_all.assert_awaited_once()


def test_delete_vectors_for_document(client, vector_store):
    document_id = uuid4()

    response = client.delete("/api/vectors", params={"documentId": str(document_id)})

    assert response.status_code == 200
    vector_store.delete_by_document.assert_awaited_once_with(str(document_id))


def test_delete_vectors_requires_a_target(client, vector_store):
    response = client.delete("/api/vectors")

    assert response.status_code == 400
    vector_store.clear_all.assert_not_awaited()


def test_metrics_endpoint(client):
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "rag_documents_ingested_total" in response.text


@pytest.fixture
def recorded_reads(monkeypatch):
    sizes = []
    original_read = StarletteUploadFile.read

    async def read(self, size=-1):
        sizes.append(size)
        return await original_read(self, size)

    monkeypatch.setattr(StarletteUploadFile, "read", read)
    return sizes


def test_oversized_upload_is_rejected_without_buffering(
    client, ingestion, vector_store, recorded_reads, monkeypatch
):
    monkeypatch.setattr(settings, "max_upload_bytes", 16)

    response = client.post(
        "/api/upload",
        files=[("files", ("big.pdf", b"%PDF-1.4" + b"x" * 64, "application/pdf"))],
    )

    assert response.status_code == 400
    assert "limit is 16 bytes" in response.json()["detail"]
    assert all(0 < size <= 17 for size in recorded_reads)
    ingestion.ingest.assert_not_awaited()


def test_upload_reads_at_most_one_byte_past_the_limit(
    client, ingestion, vector_store, recorded_reads, monkeypatch
):
    monkeypatch.setattr(settings, "max_upload_bytes", 1024)
    ingestion.ingest.return_value = IngestionReport(documents=[])

    response = client.post(
        "/api/upload",
        files=[("files", ("a.pdf", b"%PDF-1.4", "application/pdf"))],
    )

    assert response.status_code == 200
    assert recorded_reads == [1025]


def test_ingestion_failure_hides_internal_error(client, ingestion, vector_store):
    ingestion.ingest.side_effect = RuntimeError("connect to 10.0.0.7:6333 refused")

    response = client.post(
        "/api/upload",
        files=[("files", ("a.pdf", b"%PDF-1.4", "application/pdf"))],
    )

    assert response.status_code == 500
    assert response.json()["detail"] == UPLOAD_ERROR_MESSAGE


def test_storage_failures_hide_internal_error(client, vector_store, registry):
    vector_store.stats.side_effect = StorageError("connect to 10.0.0.7:6333 refused")
    registry.get_document.side_effect = DatabaseError("password authentication failed")

    stats = client.get("/api/vectors/stats")
    document = client.get(f"/api/documents/{uuid4()}")

    assert stats.status_code == 500
    assert stats.json()["detail"] == REQUEST_ERROR_MESSAGE
    assert document.status_code == 500
    assert "password" not in document.json()["detail"]
