"""Redis caching service."""

import hashlib
import json
import logging
from typing import List, Optional

import redis.asyncio as redis

from pdf_rag.core.config import settings
from pdf_rag.core.exceptions import CacheError

logger = logging.getLogger(__name__)


class CacheService:
    """Service for caching query embeddings."""

    def __init__(self, client: Optional[redis.Redis] = None) -> None:
        """Initialize the cache service."""
        self.client = client
        self.ttl = settings.cache_ttl
        self.enabled = settings.cache_enabled

    async def connect(self) -> None:
        """Connect to Redis."""
        if not self.enabled:
            return
        try:
            self.client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                max_connections=settings.redis_pool_size,
                socket_connect_timeout=5.0,
            )
            await self.client.ping()
        except Exception as e:
            raise CacheError(f"Failed to connect to Redis: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.aclose()

    async def get(self, key: str) -> Optional[str]:
        """
        Get a value from cache.

        Args:
            key: Cache key.

        Returns:
            Cached value or None if not found.
        """
        if not self.client:
            return None
        try:
            return await self.client.get(key)
        except Exception:
            logger.warning(f"Cache read failed for {key}", exc_info=True)
            return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """
        Set a value in cache.

        Args:
            key: Cache key.
            value: Value to cache.
            ttl: Time to live in seconds.
        """
        if not self.client:
            return
        try:
            await self.client.setex(key, ttl or self.ttl, value)
        except Exception as e:
            raise CacheError(f"Failed to set cache: {str(e)}") from e

    @staticmethod
    def embedding_key(model: str, dimensions: int, text: str) -> str:
        """
        Build the cache key for a query embedding.

        Args:
            model: Embedding model name.
            dimensions: Vector length.
            text: Query text.

        Returns:
            Cache key string.
        """
        text_hash = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return f"query_embedding:{model}:{dimensions}:{text_hash}"

    async def get_embedding(self, key: str) -> Optional[List[float]]:
        """
        Get a cached embedding vector.

        Args:
            key: Cache key.

        Returns:
            Vector or None if missing or unreadable.
        """
        value = await self.get(key)
        if value:
            try:
                vector = json.loads(value)
            except json.JSONDecodeError:
                return None
            if isinstance(vector, list):
                return vector
        return None

    async def set_embedding(
        self, key: str, vector: List[float], ttl: Optional[int] = None
    ) -> None:
        """
        Cache an embedding vector.

        Args:
            key: Cache key.
            vector: Embedding to store.
            ttl: Time to live in seconds.
        """
        await self.set(key, json.dumps(vector), ttl)
