"""Tests for retrieval and context assembly."""

import json

import pytest

from pdf_rag.core.exceptions import ValidationError
from pdf_rag.models.document import DocumentChunk, SearchHit, Source
from pdf_rag.services.cache import CacheService
from pdf_rag.services.chunking import generate_chunk_id
from pdf_rag.services.retrieval import (
    CONTEXT_PREAMBLE,
    NO_RELEVANT_INFORMATION,
    RetrievalService,
    build_context,
    build_system_prompt,
    make_excerpt,
    sanitize_header_value,
    sources_header,
)

from conftest import FakeEmbeddingService, pad


class InMemoryRedis:
    """Just enough of redis.asyncio.Redis for the embedding cache."""

    def __init__(self):
        self.values = {}

    async def get(self, key):
        return self.values.get(key)

    async def setex(self, key, ttl, value):
        self.values[key] = value


def _hit(text, score, filename="notes.pdf", page=1):
    return SearchHit(id=f"id-{score}", text=text, page=page, filename=filename, score=score)


async def _seed(vector_db, document_id, texts_and_vectors, filename="guide.pdf"):
    chunks = [
        DocumentChunk(
            id=generate_chunk_id(document_id, index),
            document_id=document_id,
            page=index + 1,
            chunk_index=index,
            text=text,
            embedding=pad(vector),
        )
        for index, (text, vector) in enumerate(texts_and_vectors)
    ]
    await vector_db.upsert_chunks(document_id, chunks, filename=filename)
    await vector_db.mark_document_completed(document_id)


def test_excerpt_appends_ellipsis_only_when_truncated():
    assert make_excerpt("short", 150) == "short"
    assert make_excerpt("x" * 150, 150) == "x" * 150
    assert make_excerpt("x" * 151, 150) == "x" * 150 + "..."


def test_context_numbers_documents_in_score_order():
    hits = [_hit("first chunk", 0.9, page=3), _hit("second chunk", 0.5, filename="b.pdf")]

    context = build_context(hits, excerpt_length=150)

    assert context.found is True
    assert context.context_text == (
        CONTEXT_PREAMBLE
        + "[Document 1] first chunk\n\n"
        + "[Document 2] second chunk\n\n"
    )
    assert context.sources == [
        Source(filename="notes.pdf", page=3, text="first chunk", score=0.9),
        Source(filename="b.pdf", page=1, text="second chunk", score=0.5),
    ]


def test_empty_hits_give_explicit_marker():
    context = build_context([])

    assert context.found is False
    assert context.context_text == NO_RELEVANT_INFORMATION
    assert context.sources == []


def test_system_prompt_embeds_context():
    prompt = build_system_prompt("[Document 1] facts\n\n")

    assert "[Document 1] facts" in prompt
    assert "cite your sources" in prompt


def test_header_sanitizer_keeps_printable_ascii_only():
    assert sanitize_header_value("café – résumé\n\tok~") == "caf  rsumok~"


def test_sources_header_is_json_of_sanitized_copies():
    sources = [Source(filename="résumé.pdf", page=2, text="line\nbreak", score=0.75)]

    header = sources_header(sources)

    assert json.loads(header) == {
        "sources": [{"filename": "rsum.pdf", "page": 2, "text": "linebreak", "score": 0.75}]
    }
    assert sources[0].filename == "résumé.pdf"
    header.encode("ascii")


async def test_empty_store_reports_no_relevant_information(vector_db):
    retrieval = RetrievalService(vector_db, FakeEmbeddingService(), limit=5, score_threshold=0.2)

    context = await retrieval.retrieve("anything at all", chat_id="chat-1")

    assert context.found is False
    assert context.context_text == NO_RELEVANT_INFORMATION
    assert context.sources == []


async def test_retrieve_applies_threshold_and_orders_sources(vector_db):
    await _seed(
        vector_db,
        "doc-1",
        [
            ("Neural networks learn representations.", [0.8, 0.6]),
            ("Gradient descent minimises loss.", [0.95, 0.31]),
            ("Wheat grows in temperate climates.", [0.05, 0.99]),
        ],
    )
    embeddings = FakeEmbeddingService(vectors={"how do models learn?": [1.0, 0.0]})
    retrieval = RetrievalService(vector_db, embeddings, limit=5, score_threshold=0.2)

    context = await retrieval.retrieve("how do models learn?")

    assert context.found is True
    assert [source.text for source in context.sources] == [
        "Gradient descent minimises loss.",
        "Neural networks learn representations.",
    ]
    assert context.sources[0].filename == "guide.pdf"
    assert context.sources[0].page == 2
    assert "[Document 1] Gradient descent minimises loss." in context.context_text


async def test_per_call_overrides(vector_db):
    await _seed(vector_db, "doc-1", [("alpha text", [0.9, 0.44]), ("beta text", [0.6, 0.8])])
    retrieval = RetrievalService(
        vector_db, FakeEmbeddingService(vectors={"q": [1.0]}), limit=5, score_threshold=0.2)

    assert len(await retrieval.search("q", limit=1)) == 1
    assert [hit.text for hit in await retrieval.search("q", score_threshold=0.7)] == ["alpha text"]


async def test_explicit_zero_limit_is_honoured(vector_db):
    await _seed(vector_db, "doc-1", [("alpha text", [0.9, 0.44])])
    retrieval = RetrievalService(
        vector_db, FakeEmbeddingService(vectors={"q": [1.0]}), limit=5, score_threshold=0.2)

    assert await retrieval.search("q", limit=0) == []
    assert RetrievalService(vector_db, FakeEmbeddingService(), limit=0).limit == 0


async def test_blank_query_is_rejected(vector_db):
    retrieval = RetrievalService(vector_db, FakeEmbeddingService())

    with pytest.raises(ValidationError):
        await retrieval.retrieve("   ")


async def test_query_embeddings_are_cached(vector_db):
    embeddings = FakeEmbeddingService()
    cache = CacheService(client=InMemoryRedis())
    retrieval = RetrievalService(vector_db, embeddings, cache_service=cache)

    await retrieval.retrieve("repeat question")
    await retrieval.retrieve("repeat question")

    assert embeddings.calls == [["repeat question"]]
    key = CacheService.embedding_key(embeddings.model, embeddings.dimensions, "repeat question")
    assert json.loads(cache.client.values[key]) == pad([1.0])
