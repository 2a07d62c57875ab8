"""Document ingestion pipeline: extraction, chunking, embedding and storage."""

import asyncio
import logging
import time
from typing import List, Optional

from pdf_rag.core.config import settings
from pdf_rag.core.exceptions import (
    DatabaseError,
    EmbeddingError,
    ExtractionError,
    StorageError,
    ValidationError,
)
from pdf_rag.models.document import (
    DocumentChunk,
    DocumentStatus,
    ExtractionResult,
    IngestionReport,
    PDFUpload,
    ProcessedDocument,
)
from pdf_rag.monitoring.metrics import (
    chunks_stored_total,
    documents_failed_total,
    documents_ingested_total,
    ingestion_duration_seconds,
)
from pdf_rag.services.chunking import ChunkingService, generate_chunk_id
from pdf_rag.services.database import DatabaseService
from pdf_rag.services.embedding import EmbeddingService
from pdf_rag.services.pdf_extractor import PDFExtractor
from pdf_rag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


class DocumentIngestionPipeline:
    """Turns uploaded PDFs into searchable chunks, isolating failures per file."""

    def __init__(
        self,
        extractor: PDFExtractor,
        chunking_service: ChunkingService,
        embedding_service: EmbeddingService,
        vector_db: VectorDBService,
        database: DatabaseService,
        concurrency: Optional[int] = None,
    ) -> None:
        """
        Initialize ingestion pipeline.

        Args:
            extractor: PDF text extractor.
            chunking_service: Page chunker.
            embedding_service: Embedding generation service.
            vector_db: Vector database service.
            database: Document registry.
            concurrency: Files processed at once; 1 keeps uploads sequential.
        """
        self.extractor = extractor
        self.chunking_service = chunking_service
        self.embedding_service = embedding_service
        self.vector_db = vector_db
        self.database = database
        self.concurrency = max(
            1, settings.ingestion_concurrency if concurrency is None else concurrency
        )

    async def _extract(self, upload: PDFUpload) -> tuple[ExtractionResult, Optional[str]]:
        """
        Extract pages, substituting a placeholder page for unreadable files.

        Returns:
            Extraction result and the failure reason, if extraction failed.
        """
        try:
            result = await asyncio.to_thread(self.extractor.extract, upload.content)
            return result, None
        except ExtractionError as e:
            logger.warning(f"Could not read {upload.filename}: {str(e)}")
            return self.extractor.placeholder(upload.filename, str(e)), str(e)

    async def _mark_failed(self, document_id: str, error: str) -> None:
        documents_failed_total.inc()
        try:
            await self.vector_db.delete_by_document(document_id)
        except StorageError as e:
            logger.error(
                f"Failed to remove partial chunks for document {document_id}: {str(e)}")
        try:
            await self.database.update_document_status(
                document_id, DocumentStatus.FAILED, chunk_count=0, error=error
            )
        except DatabaseError as e:
            logger.error(
                f"Failed to record failure for document {document_id}: {str(e)}")

    async def process_pdf(self, upload: PDFUpload) -> ProcessedDocument:
        """
        Ingest a single PDF.

        The document moves pending -> processing -> completed, or to failed
        on any unrecoverable error. Errors are recorded, never raised, once
        the document has been registered.

        Args:
            upload: Accepted upload.

        Returns:
            Outcome of ingesting the file.

        Raises:
            DatabaseError: If the document cannot be registered at all.
        """
        document = await self.database.create_document(
            filename=upload.filename,
            original_name=upload.filename,
            file_size=upload.size,
            mime_type=upload.content_type,
        )
        document_id = str(document.id)
        start_time = time.time()
        result = ProcessedDocument(
            document_id=document_id,
            filename=upload.filename,
            status=DocumentStatus.PROCESSING,
        )

        try:
            await self.database.update_document_status(
                document_id, DocumentStatus.PROCESSING)

            extraction, extraction_error = await self._extract(upload)
            result.total_pages = extraction.total_pages
            result.warnings = extraction.warnings
            if extraction_error is not None:
                raise ExtractionError(extraction_error)

            drafts = list(self.chunking_service.chunk_pages(extraction.pages))
            if not drafts:
                raise ExtractionError("No content could be extracted from the file")

            embeddings = await self.embedding_service.embed_batch(
                [draft.text for draft in drafts])

            chunks = [
                DocumentChunk(
                    id=generate_chunk_id(document_id, draft.chunk_index),
                    document_id=document_id,
                    page=draft.page,
                    chunk_index=draft.chunk_index,
                    text=draft.text,
                    embedding=embedding,
                )
                for draft, embedding in zip(drafts, embeddings)
            ]

            await self.vector_db.upsert_chunks(
                document_id, chunks, filename=upload.filename)
            await self.vector_db.mark_document_completed(document_id)

            summary = (
                f"Document with {extraction.total_pages} pages "
                f"and {len(chunks)} chunks"
            )
            await self.database.update_document_status(
                document_id,
                DocumentStatus.COMPLETED,
                chunk_count=len(chunks),
                summary=summary,
            )
        except (ExtractionError, EmbeddingError, StorageError, ValidationError) as e:
            logger.error(f"Error processing {upload.filename}: {str(e)}")
            await self._mark_failed(document_id, str(e))
            result.status = DocumentStatus.FAILED
            result.error = str(e)
            return result
        except Exception as e:
            logger.exception(f"Unexpected error processing {upload.filename}")
            await self._mark_failed(document_id, str(e))
            result.status = DocumentStatus.FAILED
            result.error = str(e)
            return result

        duration = time.time() - start_time
        ingestion_duration_seconds.observe(duration)
        documents_ingested_total.inc()
        chunks_stored_total.inc(len(chunks))

        result.status = DocumentStatus.COMPLETED
        result.total_chunks = len(chunks)
        logger.info(
            f"Processed {upload.filename}: {len(chunks)} chunks from "
            f"{extraction.total_pages} pages in {duration:.2f}s"
        )
        return result

    async def _process_isolated(self, upload: PDFUpload) -> ProcessedDocument:
        try:
            return await self.process_pdf(upload)
        except DatabaseError as e:
            logger.error(f"Could not register {upload.filename}: {str(e)}")
            documents_failed_total.inc()
            return ProcessedDocument(
                filename=upload.filename,
                status=DocumentStatus.FAILED,
                error=f"Could not register document: {str(e)}",
            )

    async def process_multiple_pdfs(
        self, uploads: List[PDFUpload]
    ) -> List[ProcessedDocument]:
        """
        Ingest several PDFs; one bad file never aborts the others.

        Args:
            uploads: Accepted uploads in request order.

        Returns:
            One result per upload, in request order.
        """
        if self.concurrency == 1:
            results = []
            for upload in uploads:
                logger.info(f"Processing {upload.filename}...")
                results.append(await self._process_isolated(upload))
        else:
            semaphore = asyncio.Semaphore(self.concurrency)

            async def bounded(upload: PDFUpload) -> ProcessedDocument:
                async with semaphore:
                    return await self._process_isolated(upload)

            results = await asyncio.gather(*[bounded(upload) for upload in uploads])

        return list(results)

    async def ingest(self, uploads: List[PDFUpload]) -> IngestionReport:
        """Ingest uploads and summarise processed and failed counts."""
        return IngestionReport(documents=await self.process_multiple_pdfs(uploads))

    async def delete_document(self, document_id: str) -> bool:
        """
        Delete a document and cascade to its chunks.

        Args:
            document_id: Document UUID.

        Returns:
            True if the document existed in the registry.
        """
        await self.vector_db.delete_by_document(document_id)
        return await self.database.delete_document(document_id)
