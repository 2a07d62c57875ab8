"""Health check utilities."""

from typing import Dict

from pdf_rag.services.cache import CacheService
from pdf_rag.services.database import DatabaseService
from pdf_rag.services.health import (
    check_openai,
    check_postgres,
    check_qdrant,
    check_redis,
)
from pdf_rag.services.vector_db import VectorDBService

ACCEPTABLE = ("healthy", "disabled")


async def check_all_dependencies(
    vector_db: VectorDBService,
    database: DatabaseService,
    cache_service: CacheService,
    include_openai: bool = True,
) -> Dict:
    """
    Check all service dependencies.

    Args:
        vector_db: Vector database service.
        database: Database service.
        cache_service: Cache service.
        include_openai: Whether to call the OpenAI API.

    Returns:
        Dictionary with overall status and individual service statuses.
    """
    services = {}
    overall_status = "healthy"

    qdrant_status = await check_qdrant(vector_db)
    services["qdrant"] = qdrant_status
    if qdrant_status.get("status") != "healthy":
        overall_status = "unhealthy"

    postgres_status = await check_postgres(database)
    services["postgres"] = postgres_status
    if postgres_status.get("status") != "healthy":
        overall_status = "unhealthy"

    redis_status = await check_redis(cache_service)
    services["redis"] = redis_status
    if redis_status.get("status") not in ACCEPTABLE:
        overall_status = "degraded" if overall_status == "healthy" else overall_status

    if include_openai:
        openai_status = await check_openai()
        services["openai"] = openai_status
        if openai_status.get("status") == "unhealthy":
            overall_status = "unhealthy"

    return {"status": overall_status, "services": services}


async def check_readiness(
    vector_db: VectorDBService,
    database: DatabaseService,
) -> Dict:
    """
    Check service readiness.

    The query-embedding cache is best effort and does not gate readiness.

    Args:
        vector_db: Vector database service.
        database: Database service.

    Returns:
        Readiness status dictionary.
    """
    qdrant_status = await check_qdrant(vector_db)
    postgres_status = await check_postgres(database)

    qdrant_ready = qdrant_status.get("status") == "healthy"
    postgres_ready = postgres_status.get("status") == "healthy"

    return {
        "ready": qdrant_ready and postgres_ready,
        "qdrant": qdrant_ready,
        "postgres": postgres_ready,
    }
