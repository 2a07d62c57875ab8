"""Chat and message persistence on PostgreSQL."""

import json
from typing import List, Optional

import asyncpg

from pdf_rag.core.exceptions import DatabaseError
from pdf_rag.models.chat import Chat, Message
from pdf_rag.models.document import Source
from pdf_rag.services.database import DatabaseService

DEFAULT_CHAT_TITLE = "New Chat"
TITLE_MAX_CHARS = 50


def title_from_message(content: str) -> str:
    """
    Derive a chat title from the first user message.

    Args:
        content: Message text.

    Returns:
        The text itself, or its first 50 characters followed by an ellipsis.
    """
    content = content.strip()
    if len(content) > TITLE_MAX_CHARS:
        return content[:TITLE_MAX_CHARS] + "..."
    return content


def _row_to_message(row: asyncpg.Record) -> Message:
    data = dict(row)
    sources = data.get("sources")
    if isinstance(sources, str):
        sources = json.loads(sources)
    data["sources"] = [Source(**source) for source in sources] if sources else None
    return Message(**data)


class ChatStore:
    """CRUD store for chats and their messages."""

    def __init__(self, database: DatabaseService) -> None:
        """
        Initialize chat store.

        Args:
            database: Database service owning the connection pool.
        """
        self.database = database

    async def create_chat(self, title: Optional[str] = None) -> Chat:
        """
        Create a new chat.

        Args:
            title: Chat title, defaults to "New Chat".

        Returns:
            Created chat.
        """
        pool = self.database.require_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO chats (title)
                    VALUES ($1)
                    RETURNING id, title, created_at, updated_at
                    """,
                    title or DEFAULT_CHAT_TITLE,
                )
                return Chat(**dict(row))
        except Exception as e:
            raise DatabaseError(f"Failed to create chat: {str(e)}") from e

    async def list_chats(self) -> List[Chat]:
        """
        List chats, most recently active first.

        Returns:
            List of chats.
        """
        pool = self.database.require_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT id, title, created_at, updated_at
                    FROM chats
                    ORDER BY updated_at DESC
                    """
                )
                return [Chat(**dict(row)) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to fetch chats: {str(e)}") from e

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        """
        Get a chat by ID.

        Args:
            chat_id: Chat UUID.

        Returns:
            Chat or None if not found.
        """
        pool = self.database.require_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT id, title, created_at, updated_at FROM chats WHERE id = $1",
                    chat_id,
                )
                return Chat(**dict(row)) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to fetch chat: {str(e)}") from e

    async def update_chat_title(self, chat_id: str, title: str) -> Optional[Chat]:
        """
        Rename a chat.

        Args:
            chat_id: Chat UUID.
            title: New title.

        Returns:
            Updated chat or None if not found.
        """
        pool = self.database.require_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE chats
                    SET title = $1, updated_at = NOW()
                    WHERE id = $2
                    RETURNING id, title, created_at, updated_at
                    """,
                    title,
                    chat_id,
                )
                return Chat(**dict(row)) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to update chat: {str(e)}") from e

    async def delete_chat(self, chat_id: str) -> bool:
        """
        Delete a chat and, by cascade, its messages.

        Args:
            chat_id: Chat UUID.

        Returns:
            True if deleted, False if not found.
        """
        pool = self.database.require_pool()

        try:
            async with pool.acquire() as conn:
                result = await conn.execute("DELETE FROM chats WHERE id = $1", chat_id)
                return result == "DELETE 1"
        except Exception as e:
            raise DatabaseError(f"Failed to delete chat: {str(e)}") from e

    async def append_message(
        self,
        chat_id: str,
        role: str,
        content: str,
        sources: Optional[List[Source]] = None,
    ) -> Message:
        """
        Append a message to a chat and bump the chat's activity timestamp.

        The first user message of a chat still titled "New Chat" also
        becomes the chat title.

        Args:
            chat_id: Chat UUID.
            role: "user" or "assistant".
            content: Message text.
            sources: Citations attached to an assistant answer.

        Returns:
            Created message.
        """
        pool = self.database.require_pool()
        sources_json = (
            json.dumps([source.model_dump() for source in sources])
            if sources
            else None
        )

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        """
                        INSERT INTO messages (chat_id, role, content, sources)
                        VALUES ($1, $2, $3, $4::jsonb)
                        RETURNING id, chat_id, role, content, sources, created_at
                        """,
                        chat_id,
                        role,
                        content,
                        sources_json,
                    )
                    if role == "user":
                        await conn.execute(
                            """
                            UPDATE chats
                            SET title = $1, updated_at = NOW()
                            WHERE id = $2 AND title = $3
                            """,
                            title_from_message(content),
                            chat_id,
                            DEFAULT_CHAT_TITLE,
                        )
                    await conn.execute(
                        "UPDATE chats SET updated_at = NOW() WHERE id = $1",
                        chat_id,
                    )
                return _row_to_message(row)
        except Exception as e:
            raise DatabaseError(f"Failed to create message: {str(e)}") from e

    async def get_messages(self, chat_id: str) -> List[Message]:
        """
        Get a chat's messages in chronological order.

        Args:
            chat_id: Chat UUID.

        Returns:
            List of messages.
        """
        pool = self.database.require_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT id, chat_id, role, content, sources, created_at
                    FROM messages
                    WHERE chat_id = $1
                    ORDER BY created_at ASC
                    """,
                    chat_id,
                )
                return [_row_to_message(row) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to fetch messages: {str(e)}") from e
