"""OpenAI embedding generation service."""

import logging
from typing import List, Optional

from openai import AsyncOpenAI

from pdf_rag.core.config import settings
from pdf_rag.core.exceptions import EmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        """
        Initialize the embedding service.

        Args:
            client: OpenAI client; built from settings when omitted.
            model: Embedding model name.
            dimensions: Output vector length requested from the model.
            batch_size: Maximum texts per upstream request.
        """
        self._client = client
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.batch_size = batch_size or settings.embedding_batch_size

    @property
    def client(self) -> AsyncOpenAI:
        """OpenAI client, created on first use."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    async def _embed_request(self, texts: List[str], batch_start: int) -> List[List[float]]:
        """
        Embed one bounded batch, failing the whole batch on any inconsistency.

        Args:
            texts: Texts in this batch.
            batch_start: Offset of the batch within the caller's input.

        Returns:
            Vectors aligned with texts.
        """
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=texts,
                dimensions=self.dimensions,
            )
        except Exception as e:
            raise EmbeddingError(
                f"Failed to generate embeddings for batch at {batch_start}: {str(e)}",
                batch_start=batch_start,
            ) from e

        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise EmbeddingError(
                f"Embedding batch at {batch_start} returned {len(data)} vectors "
                f"for {len(texts)} inputs",
                batch_start=batch_start,
            )

        vectors = []
        for item in data:
            if len(item.embedding) != self.dimensions:
                raise EmbeddingError(
                    f"Embedding batch at {batch_start} returned a vector of "
                    f"length {len(item.embedding)}, expected {self.dimensions}",
                    batch_start=batch_start,
                )
            vectors.append(item.embedding)
        return vectors

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors, one per input, in input order.

        Raises:
            EmbeddingError: If any batch fails.
        """
        if not texts:
            return []

        for position, text in enumerate(texts):
            if not text or not text.strip():
                raise EmbeddingError(
                    f"Cannot embed empty text at position {position}",
                    batch_start=position,
                )

        embeddings: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            embeddings.extend(await self._embed_request(batch, start))
            logger.debug(
                f"Embedded {min(start + self.batch_size, len(texts))}/{len(texts)} texts")

        return embeddings

    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text string to embed.

        Returns:
            Embedding vector.
        """
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    async def generate_query_embedding(self, query: str) -> List[float]:
        """Embed a user query for similarity search."""
        return await self.embed(query)
