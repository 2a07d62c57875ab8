"""Pydantic models for document and vector API."""

from typing import List, Optional

from pydantic import BaseModel, Field

from pdf_rag.models.document import Document, ProcessedDocument, SearchHit, VectorStats


class DocumentListResponse(BaseModel):
    """Model for document list response."""

    documents: List[Document]
    total: int
    limit: int
    offset: int


class UploadResponse(BaseModel):
    """Per-file outcome of an upload request."""

    success: bool
    message: str
    files_processed: int
    files_failed: int
    total_chunks: int
    documents: List[ProcessedDocument]
    collection_stats: Optional[VectorStats] = None


class VectorStatsResponse(BaseModel):
    """Vector store statistics."""

    success: bool = True
    stats: VectorStats


class VectorSearchRequest(BaseModel):
    """Exploratory similarity search request."""

    query: str = Field(..., min_length=1)
    limit: int = Field(5, ge=1, le=50)
    threshold: Optional[float] = Field(None, ge=-1.0, le=1.0)


class VectorSearchResponse(BaseModel):
    """Exploratory similarity search results."""

    success: bool = True
    query: str
    results: List[SearchHit]
    count: int


class ActionResponse(BaseModel):
    """Acknowledgement for destructive actions."""

    success: bool = True
    message: str
