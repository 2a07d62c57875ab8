"""Custom exceptions for the application."""

from typing import Optional


class ExtractionError(Exception):
    """Raised when a PDF binary cannot be read."""

    pass


class EmbeddingError(Exception):
    """Raised when embedding generation fails."""

    def __init__(self, message: str, batch_start: Optional[int] = None) -> None:
        super().__init__(message)
        self.batch_start = batch_start


class StorageError(Exception):
    """Raised when vector store operations fail after all retries."""

    def __init__(
        self,
        message: str,
        document_id: Optional[str] = None,
        chunk_index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.document_id = document_id
        self.chunk_index = chunk_index


class ValidationError(Exception):
    """Raised when input is rejected before any pipeline work starts."""

    pass


class LLMError(Exception):
    """Raised when LLM operations fail."""

    pass


class CacheError(Exception):
    """Raised when cache operations fail."""

    pass


class DatabaseError(Exception):
    """Raised when database operations fail."""

    pass
