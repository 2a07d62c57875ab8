"""Document Service: PDF upload, ingestion and vector store administration."""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional
from uuid import UUID

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from pdf_rag.api.health import check_all_dependencies, check_readiness
from pdf_rag.core.config import settings
from pdf_rag.core.dependencies import services
from pdf_rag.core.exceptions import DatabaseError, StorageError, ValidationError
from pdf_rag.models.document import Document
from pdf_rag.models.document_api import (
    ActionResponse,
    DocumentListResponse,
    UploadResponse,
    VectorStatsResponse,
)
from pdf_rag.services.upload import build_uploads, validate_upload

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

UPLOAD_ERROR_MESSAGE = "Failed to process upload"
REQUEST_ERROR_MESSAGE = "There was an error processing your request"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    logger.info("Document Service started")
    yield
    await services.shutdown()
    logger.info("Document Service stopped")


app = FastAPI(title="Document Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> dict:
    """
    Health check endpoint with dependency verification.

    Returns:
        Health status with service dependencies.
    """
    result = await check_all_dependencies(
        services.vector_db,
        services.database,
        services.cache_service,
    )
    return {"status": result["status"], "service": "document-service", **result}


@app.get("/ready")
async def readiness() -> dict:
    """
    Readiness check endpoint.

    Returns:
        Readiness status.
    """
    result = await check_readiness(services.vector_db, services.database)
    return {"service": "document-service", **result}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


async def _read_upload(upload: UploadFile) -> bytes:
    """
    Read an upload without buffering more than one byte past the size limit.

    A declared size over the limit is rejected before anything is read.
    """
    if upload.size is not None:
        validate_upload(upload.filename, upload.content_type, upload.size)
    return await upload.read(settings.max_upload_bytes + 1)


@app.post("/api/upload", response_model=UploadResponse)
async def upload_documents(files: List[UploadFile] = File(...)) -> UploadResponse:
    """
    Upload one or more PDFs and ingest them into the vector store.

    Args:
        files: Uploaded PDF files.

    Returns:
        Per-file outcomes and collection statistics.
    """
    try:
        raw_files = [
            (upload.filename, upload.content_type, await _read_upload(upload))
            for upload in files
        ]
        uploads = build_uploads(raw_files)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        report = await services.ingestion.ingest(uploads)
    except Exception as e:
        logger.error(f"Upload failed: {str(e)}")
        raise HTTPException(status_code=500, detail=UPLOAD_ERROR_MESSAGE)

    collection_stats = None
    try:
        collection_stats = await services.vector_db.stats()
    except StorageError as e:
        logger.warning(f"Could not read collection stats: {str(e)}")

    logger.info(
        f"Upload finished: {report.processed} processed, {report.failed} failed, "
        f"{report.total_chunks} chunks"
    )
    return UploadResponse(
        success=report.processed > 0,
        message=f"Processed {report.processed} of {len(uploads)} files",
        files_processed=report.processed,
        files_failed=report.failed,
        total_chunks=report.total_chunks,
        documents=report.documents,
        collection_stats=collection_stats,
    )


@app.get("/api/documents", response_model=DocumentListResponse)
async def list_documents(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> DocumentListResponse:
    """
    List documents.

    Args:
        limit: Maximum number of documents to return.
        offset: Number of documents to skip.

    Returns:
        List of documents.
    """
    try:
        documents = await services.database.get_documents(limit=limit, offset=offset)
        total = await services.database.count_documents()
        return DocumentListResponse(
            documents=documents,
            total=total,
            limit=limit,
            offset=offset,
        )
    except DatabaseError as e:
        logger.error(f"Failed to list documents: {str(e)}")
        raise HTTPException(status_code=500, detail=REQUEST_ERROR_MESSAGE)


@app.get("/api/documents/{document_id}", response_model=Document)
async def get_document(document_id: UUID) -> Document:
    """
    Get a document by ID.

    Args:
        document_id: Document UUID.

    Returns:
        Document details.
    """
    try:
        document = await services.database.get_document(str(document_id))
        if not document:
            raise HTTPException(status_code=404, detail="Document not found")
        return document
    except DatabaseError as e:
        logger.error(f"Failed to get document: {str(e)}")
        raise HTTPException(status_code=500, detail=REQUEST_ERROR_MESSAGE)


@app.delete("/api/documents/{document_id}", status_code=204)
async def delete_document(document_id: UUID) -> None:
    """
    Delete a document and its chunks.

    Args:
        document_id: Document UUID.
    """
    try:
        deleted = await services.ingestion.delete_document(str(document_id))
        if not deleted:
            raise HTTPException(status_code=404, detail="Document not found")
    except (DatabaseError, StorageError) as e:
        logger.error(f"Failed to delete document: {str(e)}")
        raise HTTPException(status_code=500, detail=REQUEST_ERROR_MESSAGE)


@app.get("/api/vectors/stats", response_model=VectorStatsResponse)
async def vector_stats() -> VectorStatsResponse:
    """
    Get vector store statistics.

    Returns:
        Document, chunk and completed-document counts.
    """
    try:
        return VectorStatsResponse(stats=await services.vector_db.stats())
    except StorageError as e:
        logger.error(f"Failed to read vector stats: {str(e)}")
        raise HTTPException(status_code=500, detail=REQUEST_ERROR_MESSAGE)


@app.delete("/api/vectors", response_model=ActionResponse)
async def delete_vectors(
    action: Optional[str] = Query(None),
    document_id: Optional[UUID] = Query(None, alias="documentId"),
) -> ActionResponse:
    """
    Clear the collection or remove one document's chunks.

    Args:
        action: "clear" to drop every chunk.
        document_id: Document whose chunks should be removed.

    Returns:
        Acknowledgement.
    """
    try:
        if action == "clear":
            await services.vector_db.clear_all()
            logger.info("Cleared all vectors")
            return ActionResponse(message="All documents cleared from vector store")
        if document_id is not None:
            await services.vector_db.delete_by_document(str(document_id))
            return ActionResponse(message=f"Chunks for document {document_id} deleted")
    except StorageError as e:
        logger.error(f"Failed to delete vectors: {str(e)}")
        raise HTTPException(status_code=500, detail=REQUEST_ERROR_MESSAGE)

    raise HTTPException(
        status_code=400,
        detail="Invalid request. Use action=clear or provide documentId",
    )