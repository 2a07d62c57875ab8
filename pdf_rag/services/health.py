"""Dependency probes used by the /health and /ready endpoints."""

import time
from typing import Any, Awaitable, Callable, Dict

from openai import AsyncOpenAI

from pdf_rag.core.config import settings
from pdf_rag.services.cache import CacheService
from pdf_rag.services.database import DatabaseService
from pdf_rag.services.vector_db import VectorDBService

NOT_CONNECTED = {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}


async def _timed_probe(probe: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
    """Run a probe, reporting its latency or the error it raised."""
    start_time = time.time()
    try:
        details = await probe()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e), "latency_ms": 0}
    return {
        "status": "healthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        **details,
    }


async def check_qdrant(vector_db: VectorDBService) -> Dict[str, Any]:
    """
    Check that Qdrant answers and the chunk collection exists.

    Args:
        vector_db: VectorDBService instance.

    Returns:
        Health status dictionary.
    """
    if not vector_db.client:
        return dict(NOT_CONNECTED)

    async def probe() -> Dict[str, Any]:
        exists = await vector_db.client.collection_exists(vector_db.collection_name)
        if not exists:
            raise RuntimeError(f"Collection '{vector_db.collection_name}' is missing")
        return {"collection": vector_db.collection_name}

    return await _timed_probe(probe)


async def check_postgres(database: DatabaseService) -> Dict[str, Any]:
    """
    Check the document registry through the service pool.

    Args:
        database: DatabaseService instance.

    Returns:
        Health status dictionary.
    """
    if not database.pool:
        return dict(NOT_CONNECTED)

    async def probe() -> Dict[str, Any]:
        async with database.pool.acquire() as conn:
            await conn.execute("SELECT 1")
        return {}

    return await _timed_probe(probe)


async def check_redis(cache_service: CacheService) -> Dict[str, Any]:
    """
    Check the query-embedding cache.

    Args:
        cache_service: CacheService instance.

    Returns:
        Health status dictionary; "disabled" when caching is switched off.
    """
    if not cache_service.enabled:
        return {"status": "disabled"}
    if not cache_service.client:
        return dict(NOT_CONNECTED)

    async def probe() -> Dict[str, Any]:
        await cache_service.client.ping()
        return {}

    return await _timed_probe(probe)


async def check_openai() -> Dict[str, Any]:
    """Check that the configured OpenAI key can list models."""
    if not settings.openai_api_key:
        return {"status": "not_configured", "error": "API key not set"}

    async def probe() -> Dict[str, Any]:
        client = AsyncOpenAI(api_key=settings.openai_api_key)
        await client.models.list()
        return {"models": [settings.embedding_model, settings.llm_model]}

    result = await _timed_probe(probe)
    error = result.get("error", "").lower()
    if "api key" in error or "authentication" in error:
        return {"status": "unhealthy", "error": "Invalid API key"}
    return result
