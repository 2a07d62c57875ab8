"""Query-time retrieval and context assembly for the generation step."""

import json
import logging
import time
from typing import List, Optional

from pdf_rag.core.config import settings
from pdf_rag.core.exceptions import CacheError, ValidationError
from pdf_rag.models.document import RetrievalContext, SearchHit, Source
from pdf_rag.monitoring.metrics import query_latency_seconds, retrieval_results
from pdf_rag.services.cache import CacheService
from pdf_rag.services.embedding import EmbeddingService
from pdf_rag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)

NO_RELEVANT_INFORMATION = "No relevant information found in the documents."
CONTEXT_PREAMBLE = "Here is information retrieved from the documents:\n\n"

SYSTEM_PROMPT = """You are a helpful assistant that answers questions based on the provided documents.
Use the context information to answer the user's questions to the best of your ability.
If you don't know the answer or can't find relevant information in the context,
say so honestly rather than making up an answer.
Always cite your sources by mentioning which document and page number you got the information from.

Context information:
{context}"""

HEADER_SAFE_MIN = 0x20
HEADER_SAFE_MAX = 0x7E


def make_excerpt(text: str, length: Optional[int] = None) -> str:
    """
    Truncate chunk text into a preview.

    Args:
        text: Full chunk text.
        length: Characters kept before the ellipsis.

    Returns:
        The first characters of the text, with "..." when truncated.
    """
    length = settings.excerpt_length if length is None else length
    if len(text) <= length:
        return text
    return text[:length] + "..."


def build_context(
    hits: List[SearchHit], excerpt_length: Optional[int] = None
) -> RetrievalContext:
    """
    Assemble a numbered context block and the parallel source list.

    Args:
        hits: Search results ordered by descending score.
        excerpt_length: Preview length for each source.

    Returns:
        Context text plus sources; sources[i] backs "[Document i+1]".
    """
    if not hits:
        return RetrievalContext(context_text=NO_RELEVANT_INFORMATION, sources=[], found=False)

    parts = [CONTEXT_PREAMBLE]
    sources = []
    for position, hit in enumerate(hits, 1):
        parts.append(f"[Document {position}] {hit.text}\n\n")
        sources.append(
            Source(
                filename=hit.filename,
                page=hit.page,
                text=make_excerpt(hit.text, excerpt_length),
                score=hit.score,
            )
        )
    return RetrievalContext(context_text="".join(parts), sources=sources, found=True)


def build_system_prompt(context_text: str) -> str:
    """Wrap retrieved context in the assistant instructions."""
    return SYSTEM_PROMPT.format(context=context_text)


def sanitize_header_value(text: str) -> str:
    """
    Keep only printable ASCII so the value can travel in an HTTP header.

    Args:
        text: Arbitrary text.

    Returns:
        Text with every character outside 0x20-0x7E removed.
    """
    return "".join(
        char for char in text if HEADER_SAFE_MIN <= ord(char) <= HEADER_SAFE_MAX
    )


def sources_header(sources: List[Source]) -> str:
    """
    Serialize sources for the X-Sources response header.

    Sanitized copies are encoded; the Source objects are left untouched.

    Args:
        sources: Sources in context order.

    Returns:
        Header-safe JSON string.
    """
    payload = {
        "sources": [
            {
                "filename": sanitize_header_value(source.filename),
                "page": source.page,
                "text": sanitize_header_value(source.text),
                "score": source.score,
            }
            for source in sources
        ]
    }
    return sanitize_header_value(json.dumps(payload, ensure_ascii=False))


class RetrievalService:
    """Embeds queries, searches the vector store and builds grounded context."""

    def __init__(
        self,
        vector_db: VectorDBService,
        embedding_service: EmbeddingService,
        cache_service: Optional[CacheService] = None,
        limit: Optional[int] = None,
        score_threshold: Optional[float] = None,
        excerpt_length: Optional[int] = None,
    ) -> None:
        """
        Initialize retrieval service.

        Args:
            vector_db: Vector database service.
            embedding_service: Embedding generation service.
            cache_service: Optional query-embedding cache.
            limit: Default number of chunks retrieved per query.
            score_threshold: Default minimum similarity, kept low to favour recall.
            excerpt_length: Preview length of each source.
        """
        self.vector_db = vector_db
        self.embedding_service = embedding_service
        self.cache_service = cache_service
        self.limit = settings.retrieval_limit if limit is None else limit
        self.score_threshold = (
            settings.retrieval_score_threshold
            if score_threshold is None
            else score_threshold
        )
        self.excerpt_length = (
            settings.excerpt_length if excerpt_length is None else excerpt_length
        )

    async def _query_embedding(self, query: str) -> List[float]:
        """Embed a query, consulting the cache first when one is configured."""
        if self.cache_service is None:
            return await self.embedding_service.generate_query_embedding(query)

        key = CacheService.embedding_key(
            self.embedding_service.model, self.embedding_service.dimensions, query)
        cached = await self.cache_service.get_embedding(key)
        if cached is not None:
            logger.debug(f"Cache hit for query embedding: {query[:50]}...")
            return cached

        embedding = await self.embedding_service.generate_query_embedding(query)
        try:
            await self.cache_service.set_embedding(key, embedding)
        except CacheError as e:
            logger.warning(f"Failed to cache query embedding: {str(e)}")
        return embedding

    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ) -> List[SearchHit]:
        """
        Embed a query and return matching chunks.

        Args:
            query: Natural-language query.
            limit: Maximum results, defaults to the service limit.
            score_threshold: Minimum similarity, defaults to the service threshold.

        Returns:
            Hits ordered by descending score.

        Raises:
            ValidationError: If the query is blank.
            EmbeddingError: If the query cannot be embedded.
            StorageError: If the search fails after retries.
        """
        if not query or not query.strip():
            raise ValidationError("Query is required")

        embedding = await self._query_embedding(query)
        return await self.vector_db.search(
            embedding,
            limit=self.limit if limit is None else limit,
            score_threshold=(
                self.score_threshold if score_threshold is None else score_threshold
            ),
        )

    async def retrieve(
        self,
        query: str,
        chat_id: Optional[str] = None,
        limit: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ) -> RetrievalContext:
        """
        Produce the context block and source list for one chat turn.

        Args:
            query: Latest user message.
            chat_id: Chat the query belongs to, used for logging.
            limit: Override for the number of chunks.
            score_threshold: Override for the similarity threshold.

        Returns:
            Retrieval context; an explicit no-information marker when nothing matched.
        """
        start_time = time.time()
        hits = await self.search(query, limit=limit, score_threshold=score_threshold)
        context = build_context(hits, self.excerpt_length)

        query_latency_seconds.observe(time.time() - start_time)
        retrieval_results.observe(len(hits))
        if context.found:
            logger.info(f"Found {len(hits)} relevant chunks for chat {chat_id}")
        else:
            logger.info(f"No relevant chunks found for chat {chat_id}")
        return context
