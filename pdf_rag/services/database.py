"""Database service for PostgreSQL operations."""

from typing import List, Optional

import asyncpg

from pdf_rag.core.config import settings
from pdf_rag.core.exceptions import DatabaseError
from pdf_rag.models.document import Document, DocumentStatus

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    filename TEXT NOT NULL,
    original_name TEXT NOT NULL,
    file_size BIGINT NOT NULL DEFAULT 0,
    mime_type TEXT NOT NULL DEFAULT 'application/pdf',
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
    chunk_count INTEGER NOT NULL DEFAULT 0,
    summary TEXT,
    error TEXT,
    uploaded_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS chats (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    title TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS messages (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    chat_id UUID NOT NULL REFERENCES chats (id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
    content TEXT NOT NULL,
    sources JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_documents_uploaded_at ON documents (uploaded_at);
CREATE INDEX IF NOT EXISTS idx_messages_chat_id ON messages (chat_id);
CREATE INDEX IF NOT EXISTS idx_chats_updated_at ON chats (updated_at);
"""

DOCUMENT_COLUMNS = (
    "id, filename, original_name, file_size, mime_type, status, "
    "chunk_count, summary, error, uploaded_at"
)


def _row_to_document(row: asyncpg.Record) -> Document:
    return Document(**dict(row))


class DatabaseService:
    """Service for PostgreSQL connection management and the document registry."""

    def __init__(self) -> None:
        """Initialize database service."""
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Create connection pool and make sure the schema exists."""
        try:
            self.pool = await asyncpg.create_pool(
                settings.postgres_url,
                min_size=settings.postgres_pool_min_size,
                max_size=settings.postgres_pool_max_size,
            )
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA)
        except Exception as e:
            raise DatabaseError(
                f"Failed to connect to database: {str(e)}") from e

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()

    def require_pool(self) -> asyncpg.Pool:
        if not self.pool:
            raise DatabaseError("Database not connected")
        return self.pool

    async def create_document(
        self,
        filename: str,
        original_name: str,
        file_size: int,
        mime_type: str = "application/pdf",
    ) -> Document:
        """
        Register an accepted upload as a pending document.

        Args:
            filename: Stored filename.
            original_name: Name supplied by the client.
            file_size: Size in bytes.
            mime_type: Declared content type.

        Returns:
            Created document.
        """
        pool = self.require_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO documents (filename, original_name, file_size, mime_type, status)
                    VALUES ($1, $2, $3, $4, 'pending')
                    RETURNING {DOCUMENT_COLUMNS}
                    """,
                    filename,
                    original_name,
                    file_size,
                    mime_type,
                )
                return _row_to_document(row)
        except Exception as e:
            raise DatabaseError(f"Failed to create document: {str(e)}") from e

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        chunk_count: Optional[int] = None,
        summary: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[Document]:
        """
        Move a document to a new processing status.

        Args:
            document_id: Document UUID.
            status: New status.
            chunk_count: Stored chunk count, when known.
            summary: Short description of the processed file.
            error: Failure reason for the failed status.

        Returns:
            Updated document or None if not found.
        """
        pool = self.require_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE documents
                    SET status = $1,
                        chunk_count = COALESCE($2, chunk_count),
                        summary = COALESCE($3, summary),
                        error = $4
                    WHERE id = $5
                    RETURNING {DOCUMENT_COLUMNS}
                    """,
                    status.value,
                    chunk_count,
                    summary,
                    error,
                    document_id,
                )
                return _row_to_document(row) if row else None
        except Exception as e:
            raise DatabaseError(
                f"Failed to update document status: {str(e)}") from e

    async def count_documents(self, status: Optional[DocumentStatus] = None) -> int:
        """
        Count documents, optionally with a given status.

        Returns:
            Document count.
        """
        pool = self.require_pool()

        try:
            async with pool.acquire() as conn:
                if status is None:
                    return await conn.fetchval("SELECT COUNT(*) FROM documents")
                return await conn.fetchval(
                    "SELECT COUNT(*) FROM documents WHERE status = $1",
                    status.value,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to count documents: {str(e)}") from e

    async def get_documents(
        self, limit: int = 100, offset: int = 0
    ) -> List[Document]:
        """
        Get list of documents, most recent upload first.

        Args:
            limit: Maximum number of documents to return.
            offset: Number of documents to skip.

        Returns:
            List of documents.
        """
        pool = self.require_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {DOCUMENT_COLUMNS}
                    FROM documents
                    ORDER BY uploaded_at DESC
                    LIMIT $1 OFFSET $2
                    """,
                    limit,
                    offset,
                )
                return [_row_to_document(row) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to fetch documents: {str(e)}") from e

    async def get_document(self, document_id: str) -> Optional[Document]:
        """
        Get a single document by ID.

        Args:
            document_id: Document UUID.

        Returns:
            Document or None if not found.
        """
        pool = self.require_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {DOCUMENT_COLUMNS} FROM documents WHERE id = $1",
                    document_id,
                )
                return _row_to_document(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to fetch document: {str(e)}") from e

    async def delete_document(self, document_id: str) -> bool:
        """
        Delete a document.

        Args:
            document_id: Document UUID.

        Returns:
            True if deleted, False if not found.
        """
        pool = self.require_pool()

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM documents WHERE id = $1",
                    document_id,
                )
                return result == "DELETE 1"
        except Exception as e:
            raise DatabaseError(f"Failed to delete document: {str(e)}") from e
