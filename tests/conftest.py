"""
Shared test fixtures.

Provides: in-memory Qdrant store, fake embeddings/extractor/registry,
and a small PDF builder.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

import pytest
from qdrant_client import AsyncQdrantClient

from pdf_rag.core.exceptions import EmbeddingError
from pdf_rag.models.document import (
    Document,
    DocumentStatus,
    ExtractedPage,
    ExtractionResult,
)
from pdf_rag.services.chunking import ChunkingService
from pdf_rag.services.ingestion import DocumentIngestionPipeline
from pdf_rag.services.pdf_extractor import PDFExtractor
from pdf_rag.services.retry import RetryPolicy
from pdf_rag.services.vector_db import VectorDBService

DIMS = 4


def pad(vector: List[float]) -> List[float]:
    """Pad a short vector with zeros up to the test store dimension."""
    return list(vector) + [0.0] * (DIMS - len(vector))


def make_pdf(page_texts: List[str]) -> bytes:
    """
    Assemble a minimal text PDF, one page per entry.

    Lines within a page are separated by newlines; an empty string gives a
    page with no text.
    """
    page_ids = [4 + 2 * i for i in range(len(page_texts))]
    kids = " ".join(f"{page_id} 0 R" for page_id in page_ids)
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {len(page_texts)} >>".encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    for page_id, text in zip(page_ids, page_texts):
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                "/Resources << /Font << /F1 3 0 R >> >> "
                f"/Contents {page_id + 1} 0 R >>"
            ).encode()
        )
        operations = []
        for line in text.splitlines():
            escaped = line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
            operations.append(f"({escaped}) Tj 0 -16 Td")
        stream = (
            f"BT /F1 12 Tf 72 720 Td {' '.join(operations)} ET".encode()
            if operations
            else b""
        )
        objects.append(
            f"<< /Length {len(stream)} >>\nstream\n".encode() + stream + b"\nendstream"
        )

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, 1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_offset = len(out)
    out += f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n".encode()
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_offset}\n%%EOF\n"
    ).encode()
    return bytes(out)


class FakeEmbeddingService:
    """Deterministic embedder: known texts map to fixed vectors."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, fail_on: str = ""):
        self.model = "fake-embedding"
        self.dimensions = DIMS
        self.batch_size = 10
        self.vectors = vectors or {}
        self.fail_on = fail_on
        self.calls: List[List[str]] = []

    def _vector(self, text: str) -> List[float]:
        return pad(self.vectors.get(text, [1.0]))

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        for position, text in enumerate(texts):
            if self.fail_on and self.fail_on in text:
                raise EmbeddingError("Upstream rejected batch", batch_start=position)
        return [self._vector(text) for text in texts]

    async def generate_query_embedding(self, query: str) -> List[float]:
        self.calls.append([query])
        return self._vector(query)


class FakeExtractor(PDFExtractor):
    """Returns canned pages keyed by the upload content."""

    def __init__(self, pages_by_content: Dict[bytes, List[str]]):
        self.pages_by_content = pages_by_content

    def extract(self, data: bytes) -> ExtractionResult:
        if data not in self.pages_by_content:
            return super().extract(data)
        return ExtractionResult(
            pages=[
                ExtractedPage(page_number=number, text=text)
                for number, text in enumerate(self.pages_by_content[data], 1)
            ]
        )


class FakeRegistry:
    """In-memory stand-in for the PostgreSQL document registry."""

    def __init__(self):
        self.documents: Dict[str, Document] = {}
        self.history: Dict[str, List[DocumentStatus]] = {}

    async def create_document(self, filename, original_name, file_size, mime_type="application/pdf"):
        document = Document(
            id=uuid4(),
            filename=filename,
            original_name=original_name,
            file_size=file_size,
            mime_type=mime_type,
            uploaded_at=datetime.now(timezone.utc),
        )
        self.documents[str(document.id)] = document
        self.history[str(document.id)] = [DocumentStatus.PENDING]
        return document

    async def update_document_status(
        self, document_id, status, chunk_count=None, summary=None, error=None
    ):
        document = self.documents.get(document_id)
        if document is None:
            return None
        document.status = status
        if chunk_count is not None:
            document.chunk_count = chunk_count
        if summary is not None:
            document.summary = summary
        document.error = error
        self.history[document_id].append(status)
        return document

    async def get_document(self, document_id):
        return self.documents.get(document_id)

    async def delete_document(self, document_id):
        return self.documents.pop(document_id, None) is not None


@pytest.fixture
def fast_retry_policy():
    return RetryPolicy(max_attempts=3, base_delay=0.0, multiplier=2.0)


@pytest.fixture
async def qdrant_client():
    client = AsyncQdrantClient(location=":memory:")
    yield client
    await client.close()


@pytest.fixture
async def vector_db(qdrant_client, fast_retry_policy):
    service = VectorDBService(
        client=qdrant_client,
        collection_name="test_chunks",
        dimensions=DIMS,
        retry_policy=fast_retry_policy,
        batch_size=100,
    )
    await service.connect()
    return service


@pytest.fixture
def embeddings():
    return FakeEmbeddingService()


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def chunking():
    return ChunkingService(chunk_size=100, chunk_overlap=0, min_chunk_chars=10)


@pytest.fixture
def make_pipeline(chunking, embeddings, vector_db, registry):
    def factory(pages_by_content=None, concurrency=1, embedding_service=None, store=None):
        return DocumentIngestionPipeline(
            extractor=FakeExtractor(pages_by_content or {}),
            chunking_service=chunking,
            embedding_service=embedding_service or embeddings,
            vector_db=store or vector_db,
            database=registry,
            concurrency=concurrency,
        )

    return factory


class FlakyUpsertClient:
    """Qdrant client wrapper whose chosen upsert attempts fail after writing."""

    def __init__(self, inner: AsyncQdrantClient, failing_attempts):
        self.inner = inner
        self.failing_attempts = set(failing_attempts)
        self.attempts = 0

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def upsert(self, **kwargs):
        self.attempts += 1
        result = await self.inner.upsert(**kwargs)
        if self.attempts in self.failing_attempts:
            raise ConnectionError("connection reset after write")
        return result
