"""Chat Service: retrieval-augmented chat over uploaded PDFs."""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from pdf_rag.api.health import check_all_dependencies, check_readiness
from pdf_rag.core.config import settings
from pdf_rag.core.dependencies import services
from pdf_rag.core.exceptions import DatabaseError, ValidationError
from pdf_rag.models.chat import (
    Chat,
    ChatCreate,
    ChatRequest,
    ChatUpdate,
    ChatWithMessages,
    Message,
    MessageCreate,
    TokenUsage,
)
from pdf_rag.models.document import Source
from pdf_rag.models.document_api import (
    ActionResponse,
    VectorSearchRequest,
    VectorSearchResponse,
)
from pdf_rag.monitoring.metrics import query_counter, query_errors_total
from pdf_rag.services.retrieval import build_system_prompt, sources_header

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CHAT_ERROR_MESSAGE = "There was an error processing your request"
SEARCH_ERROR_MESSAGE = "Search could not complete your request"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    logger.info("Chat Service started")
    yield
    await services.shutdown()
    logger.info("Chat Service stopped")


app = FastAPI(title="Chat Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Sources"],
)


async def _save_answer(
    chat_id: Optional[str], content: str, sources: List[Source]
) -> None:
    if not chat_id or not content:
        return
    try:
        await services.chat_store.append_message(
            chat_id, "assistant", content, sources=sources or None)
    except DatabaseError as e:
        logger.error(f"Failed to save assistant message for chat {chat_id}: {str(e)}")


@app.post("/api/chat")
async def chat(request: ChatRequest) -> StreamingResponse:
    """
    Answer the latest user message from the uploaded documents.

    The answer is streamed as plain text. Citations travel in the
    ``X-Sources`` header so the client can render them before the body ends.

    Args:
        request: Conversation so far and optional chat to persist into.

    Returns:
        Streamed answer.
    """
    start_time = time.time()
    query_counter.inc()

    chat_id = str(request.chat_id) if request.chat_id else None
    query = request.messages[-1].content
    usage = TokenUsage()

    try:
        if request.messages[-1].role != "user":
            raise ValidationError("Last message must come from the user")

        context = await services.retrieval.retrieve(query, chat_id=chat_id)
        stream = services.llm_service.stream_response(
            build_system_prompt(context.context_text),
            request.messages,
            usage=usage,
        )
        # Pull the first delta so generation errors still map to a 500.
        try:
            first_delta = await stream.__anext__()
        except StopAsyncIteration:
            first_delta = ""

        if chat_id:
            await services.chat_store.append_message(chat_id, "user", query)
    except ValidationError as e:
        query_errors_total.inc()
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Chat request failed: {str(e)}")
        query_errors_total.inc()
        raise HTTPException(status_code=500, detail=CHAT_ERROR_MESSAGE)

    async def body() -> AsyncIterator[str]:
        parts = [first_delta]
        if first_delta:
            yield first_delta
        try:
            async for delta in stream:
                parts.append(delta)
                yield delta
        except Exception as e:
            logger.error(f"Chat stream interrupted: {str(e)}")
            query_errors_total.inc()
            raise
        await _save_answer(chat_id, "".join(parts), context.sources)
        logger.info(
            f"Chat answered in {(time.time() - start_time) * 1000:.2f}ms "
            f"using {usage.total_tokens} tokens"
        )

    return StreamingResponse(
        body(),
        media_type="text/plain; charset=utf-8",
        headers={"X-Sources": sources_header(context.sources)},
    )


@app.post("/api/vectors/search", response_model=VectorSearchResponse)
async def search_vectors(request: VectorSearchRequest) -> VectorSearchResponse:
    """
    Exploratory similarity search without generation.

    Args:
        request: Query, limit and optional threshold.

    Returns:
        Matching chunks ordered by descending score.
    """
    threshold = (
        settings.search_score_threshold
        if request.threshold is None
        else request.threshold
    )
    try:
        results = await services.retrieval.search(
            request.query, limit=request.limit, score_threshold=threshold)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Vector search failed: {str(e)}")
        raise HTTPException(status_code=500, detail=SEARCH_ERROR_MESSAGE)

    return VectorSearchResponse(
        query=request.query, results=results, count=len(results))


@app.get("/api/chats", response_model=List[Chat])
async def list_chats() -> List[Chat]:
    """List chats, most recently active first."""
    try:
        return await services.chat_store.list_chats()
    except DatabaseError as e:
        logger.error(f"Chat store request failed: {str(e)}")
        raise HTTPException(status_code=500, detail=CHAT_ERROR_MESSAGE)


@app.post("/api/chats", response_model=Chat, status_code=201)
async def create_chat(chat_data: Optional[ChatCreate] = None) -> Chat:
    """
    Create a chat.

    Args:
        chat_data: Optional title.

    Returns:
        Created chat.
    """
    title = chat_data.title if chat_data else None
    try:
        return await services.chat_store.create_chat(title)
    except DatabaseError as e:
        logger.error(f"Chat store request failed: {str(e)}")
        raise HTTPException(status_code=500, detail=CHAT_ERROR_MESSAGE)


@app.get("/api/chats/{chat_id}", response_model=ChatWithMessages)
async def get_chat(chat_id: UUID) -> ChatWithMessages:
    """
    Get a chat with its message history.

    Args:
        chat_id: Chat UUID.

    Returns:
        Chat and messages.
    """
    try:
        chat_record = await services.chat_store.get_chat(str(chat_id))
        if not chat_record:
            raise HTTPException(status_code=404, detail="Chat not found")
        messages = await services.chat_store.get_messages(str(chat_id))
        return ChatWithMessages(chat=chat_record, messages=messages)
    except DatabaseError as e:
        logger.error(f"Chat store request failed: {str(e)}")
        raise HTTPException(status_code=500, detail=CHAT_ERROR_MESSAGE)


@app.patch("/api/chats/{chat_id}", response_model=Chat)
async def rename_chat(chat_id: UUID, chat_data: ChatUpdate) -> Chat:
    """
    Rename a chat.

    Args:
        chat_id: Chat UUID.
        chat_data: New title.

    Returns:
        Updated chat.
    """
    try:
        updated = await services.chat_store.update_chat_title(str(chat_id), chat_data.title)
        if not updated:
            raise HTTPException(status_code=404, detail="Chat not found")
        return updated
    except DatabaseError as e:
        logger.error(f"Chat store request failed: {str(e)}")
        raise HTTPException(status_code=500, detail=CHAT_ERROR_MESSAGE)


@app.delete("/api/chats/{chat_id}", response_model=ActionResponse)
async def delete_chat(chat_id: UUID) -> ActionResponse:
    """
    Delete a chat and its messages.

    Args:
        chat_id: Chat UUID.

    Returns:
        Acknowledgement.
    """
    try:
        deleted = await services.chat_store.delete_chat(str(chat_id))
        if not deleted:
            raise HTTPException(status_code=404, detail="Chat not found")
        return ActionResponse(message="Chat deleted")
    except DatabaseError as e:
        logger.error(f"Chat store request failed: {str(e)}")
        raise HTTPException(status_code=500, detail=CHAT_ERROR_MESSAGE)


@app.get("/api/chats/{chat_id}/messages", response_model=List[Message])
async def get_messages(chat_id: UUID) -> List[Message]:
    """Get a chat's messages in chronological order."""
    try:
        chat_record = await services.chat_store.get_chat(str(chat_id))
        if not chat_record:
            raise HTTPException(status_code=404, detail="Chat not found")
        return await services.chat_store.get_messages(str(chat_id))
    except DatabaseError as e:
        logger.error(f"Chat store request failed: {str(e)}")
        raise HTTPException(status_code=500, detail=CHAT_ERROR_MESSAGE)


@app.post("/api/chats/{chat_id}/messages", response_model=Message, status_code=201)
async def create_message(chat_id: UUID, message: MessageCreate) -> Message:
    """
    Append a message to a chat.

    Args:
        chat_id: Chat UUID.
        message: Role, content and optional sources.

    Returns:
        Created message.
    """
    try:
        chat_record = await services.chat_store.get_chat(str(chat_id))
        if not chat_record:
            raise HTTPException(status_code=404, detail="Chat not found")
        return await services.chat_store.append_message(
            str(chat_id), message.role, message.content, sources=message.sources)
    except DatabaseError as e:
        logger.error(f"Chat store request failed: {str(e)}")
        raise HTTPException(status_code=500, detail=CHAT_ERROR_MESSAGE)


@app.get("/health")
async def health() -> dict:
    """
    Health check endpoint with dependency verification.

    Returns:
        Health status with service dependencies.
    """
    result = await check_all_dependencies(
        services.vector_db, services.database, services.cache_service
    )
    return {"status": result["status"], "service": "chat-service", **result}


@app.get("/ready")
async def readiness() -> dict:
    """
    Readiness check endpoint.

    Returns:
        Readiness status.
    """
    result = await check_readiness(services.vector_db, services.database)
    return {"service": "chat-service", **result}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
