"""Qdrant vector database service."""

import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    NearestQuery,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from pdf_rag.core.config import settings
from pdf_rag.core.exceptions import StorageError, ValidationError
from pdf_rag.models.document import DocumentChunk, DocumentStatus, SearchHit, VectorStats
from pdf_rag.monitoring.metrics import storage_retries_total
from pdf_rag.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCROLL_PAGE_SIZE = 256


def _document_filter(document_id: str) -> Filter:
    return Filter(
        must=[FieldCondition(key="document_id", match=MatchValue(value=document_id))]
    )


def _completed_filter() -> Filter:
    return Filter(
        must=[
            FieldCondition(
                key="document_status",
                match=MatchValue(value=DocumentStatus.COMPLETED.value),
            )
        ]
    )


class VectorDBService:
    """Service for storing chunk vectors in Qdrant and searching them."""

    def __init__(
        self,
        client: Optional[AsyncQdrantClient] = None,
        collection_name: Optional[str] = None,
        dimensions: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        """
        Initialize the vector database service.

        Args:
            client: Qdrant client; created on connect() when omitted.
            collection_name: Collection holding chunk points.
            dimensions: Vector size every chunk must match.
            retry_policy: Backoff policy shared by writes and searches.
            batch_size: Points per upsert request.
        """
        self.client = client
        self.collection_name = collection_name or settings.qdrant_collection_name
        self.dimensions = dimensions or settings.embedding_dimensions
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_size = batch_size or settings.upsert_batch_size

    async def connect(self) -> None:
        """Connect to Qdrant."""
        try:
            if self.client is None:
                self.client = AsyncQdrantClient(
                    url=settings.qdrant_url,
                    api_key=settings.qdrant_api_key or None,
                    timeout=30.0,
                )
            await self.ensure_collection()
        except Exception as e:
            raise StorageError(
                f"Failed to connect to Qdrant: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Qdrant."""
        if self.client:
            await self.client.close()

    def _require_client(self) -> AsyncQdrantClient:
        if not self.client:
            raise StorageError("Client not connected")
        return self.client

    async def ensure_collection(self) -> None:
        """Ensure the collection exists."""
        client = self._require_client()

        collections = await client.get_collections()
        collection_names = [col.name for col in collections.collections]

        if self.collection_name not in collection_names:
            logger.info(f"Creating collection '{self.collection_name}'")
            await client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.dimensions,
                    distance=Distance.COSINE,
                ),
            )
            for field in ("document_id", "document_status"):
                await client.create_payload_index(
                    collection_name=self.collection_name,
                    field_name=field,
                    field_schema=PayloadSchemaType.KEYWORD,
                )

    async def _with_retry(
        self,
        operation: str,
        func: Callable[[], Awaitable[T]],
        document_id: Optional[str] = None,
        chunk_index: Optional[int] = None,
    ) -> T:
        """Run a storage call under the retry policy, surfacing StorageError."""

        def record_retry(attempt: int, error: BaseException) -> None:
            storage_retries_total.labels(operation=operation).inc()

        try:
            return await self.retry_policy.run(func, on_retry=record_retry)
        except StorageError:
            raise
        except Exception as e:
            location = ""
            if document_id is not None:
                location += f" for document {document_id}"
            if chunk_index is not None:
                location += f" at chunk {chunk_index}"
            raise StorageError(
                f"Qdrant {operation} failed{location}: {str(e)}",
                document_id=document_id,
                chunk_index=chunk_index,
            ) from e

    async def upsert_chunks(
        self,
        document_id: str,
        chunks: List[DocumentChunk],
        filename: str = "",
    ) -> None:
        """
        Upsert document chunks into the vector database.

        Chunks are written with a ``processing`` document status and stay
        invisible to search until mark_document_completed() is called.

        Args:
            document_id: ID of the owning document.
            chunks: Embedded chunks to write.
            filename: Source filename stored alongside each chunk.

        Raises:
            ValidationError: If a vector has the wrong dimensionality.
            StorageError: If a batch still fails after retries.
        """
        client = self._require_client()

        for chunk in chunks:
            if len(chunk.embedding) != self.dimensions:
                raise ValidationError(
                    f"Chunk {chunk.chunk_index} has dimension "
                    f"{len(chunk.embedding)}, store expects {self.dimensions}"
                )
            if chunk.document_id != document_id:
                raise ValidationError(
                    f"Chunk {chunk.chunk_index} belongs to document "
                    f"{chunk.document_id}, not {document_id}"
                )

        points = [
            PointStruct(
                id=chunk.id,
                vector=chunk.embedding,
                payload={
                    "document_id": document_id,
                    "document_status": DocumentStatus.PROCESSING.value,
                    "filename": filename,
                    "text": chunk.text,
                    "page": chunk.page,
                    "chunk_index": chunk.chunk_index,
                    "created_at": chunk.created_at.isoformat(),
                },
            )
            for chunk in chunks
        ]

        total_batches = (len(points) + self.batch_size - 1) // self.batch_size
        for batch_number, start in enumerate(range(0, len(points), self.batch_size), 1):
            batch = points[start:start + self.batch_size]

            async def upsert_batch(batch: List[PointStruct] = batch):
                return await client.upsert(
                    collection_name=self.collection_name,
                    points=batch,
                    wait=True,
                )

            await self._with_retry(
                "upsert",
                upsert_batch,
                document_id=document_id,
                chunk_index=chunks[start].chunk_index,
            )
            logger.info(
                f"Uploaded batch {batch_number}/{total_batches} for document {document_id}")

    async def mark_document_completed(self, document_id: str) -> None:
        """
        Make a document's chunks visible to search.

        Args:
            document_id: ID of the document whose chunks were fully written.
        """
        client = self._require_client()

        async def set_status():
            return await client.set_payload(
                collection_name=self.collection_name,
                payload={"document_status": DocumentStatus.COMPLETED.value},
                points=_document_filter(document_id),
                wait=True,
            )

        await self._with_retry("set_payload", set_status, document_id=document_id)

    async def search(
        self,
        query_embedding: List[float],
        limit: int,
        score_threshold: float,
    ) -> List[SearchHit]:
        """
        Search for similar chunks of completed documents.

        Args:
            query_embedding: Query embedding vector.
            limit: Maximum number of results to return.
            score_threshold: Results scoring at or below this are excluded.

        Returns:
            Matching chunks ordered by descending cosine similarity.

        Raises:
            StorageError: If the search still fails after retries.
        """
        client = self._require_client()

        if len(query_embedding) != self.dimensions:
            raise ValidationError(
                f"Query vector has dimension {len(query_embedding)}, "
                f"store expects {self.dimensions}"
            )
        if limit <= 0:
            return []

        async def query():
            return await client.query_points(
                collection_name=self.collection_name,
                query=NearestQuery(nearest=query_embedding),
                limit=limit,
                query_filter=_completed_filter(),
                score_threshold=score_threshold,
                with_payload=True,
            )

        results = await self._with_retry("search", query)

        matches = []
        for point in results.points:
            if point.score <= score_threshold:
                continue
            payload = point.payload or {}
            matches.append(
                SearchHit(
                    id=str(point.id),
                    text=payload.get("text", ""),
                    page=payload.get("page", 0),
                    filename=payload.get("filename", ""),
                    score=point.score,
                    document_id=payload.get("document_id"),
                    chunk_index=payload.get("chunk_index"),
                )
            )

        matches.sort(key=lambda hit: hit.score, reverse=True)
        return matches[:limit]

    async def delete_by_document(self, document_id: str) -> None:
        """
        Delete all chunks for a document.

        Args:
            document_id: ID of the document to delete.
        """
        client = self._require_client()

        async def delete():
            return await client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(filter=_document_filter(document_id)),
                wait=True,
            )

        await self._with_retry("delete", delete, document_id=document_id)
        logger.info(f"Deleted chunks for document {document_id}")

    async def clear_all(self) -> None:
        """Drop every chunk by recreating the collection."""
        client = self._require_client()

        async def drop():
            return await client.delete_collection(collection_name=self.collection_name)

        await self._with_retry("clear", drop)
        await self._with_retry("clear", self.ensure_collection)
        logger.info(f"Collection '{self.collection_name}' cleared and recreated")

    async def count_chunks(self, document_id: Optional[str] = None) -> int:
        """
        Count stored chunks, optionally for a single document.

        Args:
            document_id: Restrict the count to this document.

        Returns:
            Exact number of matching points.
        """
        client = self._require_client()
        count_filter = _document_filter(document_id) if document_id else None

        async def count():
            return await client.count(
                collection_name=self.collection_name,
                count_filter=count_filter,
                exact=True,
            )

        result = await self._with_retry("count", count, document_id=document_id)
        return result.count

    async def stats(self) -> VectorStats:
        """
        Compute document and chunk totals from stored payloads.

        Returns:
            Snapshot of distinct documents, chunks and completed documents.
        """
        client = self._require_client()

        documents = set()
        completed = set()
        total_chunks = 0
        offset = None

        while True:
            async def scroll(offset=offset):
                return await client.scroll(
                    collection_name=self.collection_name,
                    limit=SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=["document_id", "document_status"],
                    with_vectors=False,
                )

            points, offset = await self._with_retry("stats", scroll)
            for point in points:
                payload = point.payload or {}
                document_id = payload.get("document_id")
                total_chunks += 1
                documents.add(document_id)
                if payload.get("document_status") == DocumentStatus.COMPLETED.value:
                    completed.add(document_id)
            if offset is None:
                break

        return VectorStats(
            total_documents=len(documents),
            total_chunks=total_chunks,
            completed_documents=len(completed),
        )

    async def health_check(self) -> bool:
        """Return True when Qdrant answers a collections listing."""
        if not self.client:
            return False
        try:
            await self.client.get_collections()
            return True
        except Exception:
            logger.warning("Qdrant health check failed", exc_info=True)
            return False
