"""Chat and message models."""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from pdf_rag.models.document import Source


class Chat(BaseModel):
    """A conversation thread."""

    id: UUID
    title: str
    created_at: datetime
    updated_at: datetime


class Message(BaseModel):
    """A persisted chat message, optionally carrying its citations."""

    id: UUID
    chat_id: UUID
    role: Literal["user", "assistant"]
    content: str
    sources: Optional[List[Source]] = None
    created_at: datetime


class ChatCreate(BaseModel):
    """Model for creating a chat."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)


class ChatUpdate(BaseModel):
    """Model for renaming a chat."""

    title: str = Field(..., min_length=1, max_length=200)


class MessageCreate(BaseModel):
    """Model for appending a message to a chat."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)
    sources: Optional[List[Source]] = None


class ConversationMessage(BaseModel):
    """A message as sent by the chat client for generation."""

    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    """Chat completion request."""

    messages: List[ConversationMessage] = Field(..., min_length=1)
    chat_id: Optional[UUID] = None


class ChatWithMessages(BaseModel):
    """A chat together with its message history."""

    chat: Chat
    messages: List[Message]


class TokenUsage(BaseModel):
    """Token accounting reported by the generation service."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
