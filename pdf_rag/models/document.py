"""Document models for the RAG pipeline."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class DocumentStatus(str, Enum):
    """Processing status of an uploaded document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Document(BaseModel):
    """Document model representing an uploaded PDF."""

    id: UUID
    filename: str
    original_name: str
    file_size: int = Field(default=0, ge=0)
    mime_type: str = "application/pdf"
    uploaded_at: datetime
    status: DocumentStatus = DocumentStatus.PENDING
    chunk_count: int = Field(default=0, ge=0)
    summary: Optional[str] = None
    error: Optional[str] = None

    class Config:
        """Pydantic config."""

        from_attributes = True


class ChunkDraft(BaseModel):
    """Chunk text produced by the chunker, before embedding."""

    page: int
    chunk_index: int
    text: str


class DocumentChunk(BaseModel):
    """Chunk model representing an embedded document fragment."""

    id: str
    document_id: str
    page: int
    chunk_index: int
    text: str
    embedding: List[float]
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, value: str) -> str:
        """Reject chunks whose text is empty after trimming."""
        if not value.strip():
            raise ValueError("chunk text must not be empty")
        return value


class SearchHit(BaseModel):
    """A single similarity search match."""

    id: str
    text: str
    page: int
    filename: str
    score: float
    document_id: Optional[str] = None
    chunk_index: Optional[int] = None


class Source(BaseModel):
    """Citation-eligible source derived from a search hit."""

    filename: str
    page: int
    text: str
    score: float


class VectorStats(BaseModel):
    """Snapshot of vector store contents."""

    total_documents: int = 0
    total_chunks: int = 0
    completed_documents: int = 0


class ExtractedPage(BaseModel):
    """Text extracted from a single PDF page."""

    page_number: int
    text: str


class ExtractionWarning(BaseModel):
    """Structured warning emitted while parsing a PDF."""

    code: str
    count: int = 1
    detail: Optional[str] = None


class ExtractionResult(BaseModel):
    """Pages and warnings produced by the PDF extractor."""

    pages: List[ExtractedPage] = Field(default_factory=list)
    warnings: List[ExtractionWarning] = Field(default_factory=list)

    @property
    def total_pages(self) -> int:
        """Number of pages in the source file."""
        return len(self.pages)


class PDFUpload(BaseModel):
    """An accepted upload handed to the ingestion pipeline."""

    filename: str
    content: bytes
    content_type: str = "application/pdf"

    @property
    def size(self) -> int:
        """Size of the uploaded binary in bytes."""
        return len(self.content)


class ProcessedDocument(BaseModel):
    """Outcome of ingesting one uploaded file."""

    document_id: Optional[str] = None
    filename: str
    status: DocumentStatus
    total_pages: int = 0
    total_chunks: int = 0
    warnings: List[ExtractionWarning] = Field(default_factory=list)
    error: Optional[str] = None


class IngestionReport(BaseModel):
    """Per-request summary of a multi-file upload."""

    documents: List[ProcessedDocument] = Field(default_factory=list)

    @property
    def processed(self) -> int:
        """Number of files that reached the completed state."""
        return sum(
            1 for doc in self.documents if doc.status == DocumentStatus.COMPLETED
        )

    @property
    def failed(self) -> int:
        """Number of files that ended in the failed state."""
        return sum(
            1 for doc in self.documents if doc.status == DocumentStatus.FAILED
        )

    @property
    def total_chunks(self) -> int:
        """Chunks stored across all completed files."""
        return sum(doc.total_chunks for doc in self.documents)


class RetrievalContext(BaseModel):
    """Context block and parallel source list for the generation step."""

    context_text: str
    sources: List[Source] = Field(default_factory=list)
    found: bool = False
