"""Document chunking service."""

import uuid
from typing import Iterable, Iterator, Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from pdf_rag.core.config import settings
from pdf_rag.models.document import ChunkDraft, ExtractedPage

SEPARATORS = ["\n\n", "\n", " ", ""]

CHUNK_NAMESPACE = uuid.UUID("00000000-0000-0000-0000-000000000000")


def generate_chunk_id(document_id: str, chunk_index: int) -> str:
    """
    Generate a deterministic UUID for a chunk based on document_id and chunk_index.

    Args:
        document_id: ID of the source document.
        chunk_index: Index of the chunk within the document.

    Returns:
        UUID string for the chunk.
    """
    name = f"{document_id}:{chunk_index}"
    return str(uuid.uuid5(CHUNK_NAMESPACE, name))


class ChunkingService:
    """Service for chunking page text into overlapping windows."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        min_chunk_chars: Optional[int] = None,
    ) -> None:
        """
        Initialize the chunking service.

        Args:
            chunk_size: Target window size in characters.
            chunk_overlap: Characters shared between consecutive windows.
            min_chunk_chars: Windows shorter than this after trimming are dropped.
        """
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_overlap = (
            settings.chunk_overlap if chunk_overlap is None else chunk_overlap
        )
        self.min_chunk_chars = (
            settings.min_chunk_chars if min_chunk_chars is None else min_chunk_chars
        )
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            length_function=len,
            separators=SEPARATORS,
            keep_separator=True,
        )

    def iter_chunks(self, text: str) -> Iterator[str]:
        """
        Lazily yield trimmed windows of a page's text.

        Args:
            text: Full extracted text of one page.

        Yields:
            Window text, skipping windows shorter than the minimum length.
        """
        if not text or not text.strip():
            return
        for window in self.splitter.split_text(text):
            trimmed = window.strip()
            if len(trimmed) < self.min_chunk_chars:
                continue
            yield trimmed

    def chunk_pages(self, pages: Iterable[ExtractedPage]) -> Iterator[ChunkDraft]:
        """
        Chunk every non-empty page, numbering chunks across the whole document.

        Args:
            pages: Extracted pages in document order.

        Yields:
            Chunk drafts carrying their page number and document-wide index.
        """
        chunk_index = 0
        for page in pages:
            for window in self.iter_chunks(page.text):
                yield ChunkDraft(
                    page=page.page_number,
                    chunk_index=chunk_index,
                    text=window,
                )
                chunk_index += 1
