"""Tests for chat persistence."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from pdf_rag.core.exceptions import DatabaseError
from pdf_rag.models.document import Source
from pdf_rag.services.chat_store import DEFAULT_CHAT_TITLE, ChatStore, title_from_message
from pdf_rag.services.database import DatabaseService


def _message_row(chat_id, role="assistant", content="answer", sources=None):
    return {
        "id": uuid4(),
        "chat_id": chat_id,
        "role": role,
        "content": content,
        "sources": sources,
        "created_at": datetime.now(timezone.utc),
    }


@pytest.fixture
def conn():
    connection = MagicMock()
    connection.fetchrow = AsyncMock()
    connection.fetch = AsyncMock()
    connection.execute = AsyncMock()
    return connection


@pytest.fixture
def store(conn):
    database = DatabaseService()
    database.pool = MagicMock()
    database.pool.acquire.return_value.__aenter__.return_value = conn
    return ChatStore(database)


def test_short_message_becomes_title():
    assert title_from_message("  What is in the appendix?  ") == "What is in the appendix?"


def test_long_message_is_truncated_for_title():
    message = "Summarise every table in the quarterly report for the finance team please"

    assert title_from_message(message) == message[:50] + "..."


async def test_first_user_message_renames_default_chat(store, conn):
    chat_id = uuid4()
    conn.fetchrow.return_value = _message_row(chat_id, role="user", content="Hello there")

    message = await store.append_message(str(chat_id), "user", "Hello there")

    assert message.role == "user"
    rename = conn.execute.await_args_list[0]
    assert rename.args[1:] == ("Hello there", str(chat_id), DEFAULT_CHAT_TITLE)


async def test_assistant_message_keeps_sources(store, conn):
    chat_id = uuid4()
    sources = [Source(filename="a.pdf", page=2, text="excerpt", score=0.8)]
    conn.fetchrow.return_value = _message_row(
        chat_id, sources=json.dumps([source.model_dump() for source in sources]))

    message = await store.append_message(str(chat_id), "assistant", "answer", sources=sources)

    assert message.sources == sources
    assert conn.execute.await_count == 1
    assert json.loads(conn.fetchrow.await_args.args[4]) == [sources[0].model_dump()]


async def test_messages_are_returned_in_order(store, conn):
    chat_id = uuid4()
    rows = [
        _message_row(chat_id, role="user", content="q"),
        _message_row(chat_id, role="assistant", content="a"),
    ]
    conn.fetch.return_value = rows

    messages = await store.get_messages(str(chat_id))

    assert [message.content for message in messages] == ["q", "a"]
    assert messages[1].sources is None


async def test_unconnected_database_raises():
    with pytest.raises(DatabaseError):
        await ChatStore(DatabaseService()).list_chats()


async def test_driver_errors_are_wrapped(store, conn):
    conn.fetch.side_effect = OSError("connection lost")

    with pytest.raises(DatabaseError, match="connection lost"):
        await store.get_messages(str(uuid4()))
