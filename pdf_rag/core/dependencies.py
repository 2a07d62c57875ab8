"""Dependency injection for services."""

import logging

from pdf_rag.core.exceptions import CacheError
from pdf_rag.services.cache import CacheService
from pdf_rag.services.chat_store import ChatStore
from pdf_rag.services.chunking import ChunkingService
from pdf_rag.services.database import DatabaseService
from pdf_rag.services.embedding import EmbeddingService
from pdf_rag.services.ingestion import DocumentIngestionPipeline
from pdf_rag.services.llm import LLMService
from pdf_rag.services.pdf_extractor import PDFExtractor
from pdf_rag.services.retrieval import RetrievalService
from pdf_rag.services.retry import RetryPolicy
from pdf_rag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Container for service instances."""

    def __init__(self) -> None:
        """Initialize service container."""
        self.retry_policy = RetryPolicy()
        self.vector_db = VectorDBService(retry_policy=self.retry_policy)
        self.embedding_service = EmbeddingService()
        self.chunking_service = ChunkingService()
        self.extractor = PDFExtractor()
        self.cache_service = CacheService()
        self.llm_service = LLMService()
        self.database = DatabaseService()
        self.chat_store = ChatStore(self.database)
        self.ingestion = DocumentIngestionPipeline(
            extractor=self.extractor,
            chunking_service=self.chunking_service,
            embedding_service=self.embedding_service,
            vector_db=self.vector_db,
            database=self.database,
        )
        self.retrieval = RetrievalService(
            vector_db=self.vector_db,
            embedding_service=self.embedding_service,
            cache_service=self.cache_service,
        )

    async def initialize(self) -> None:
        """Initialize all services."""
        await self.vector_db.connect()
        await self.database.connect()
        try:
            await self.cache_service.connect()
        except CacheError as e:
            logger.warning(f"Query embedding cache unavailable: {str(e)}")
            self.cache_service.client = None

    async def shutdown(self) -> None:
        """Shutdown all services."""
        await self.database.disconnect()
        await self.vector_db.disconnect()
        await self.cache_service.disconnect()


services = ServiceContainer()
