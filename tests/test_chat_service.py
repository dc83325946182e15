"""Tests for ChatService: retrieval, prompt assembly, caching and sessions."""

import uuid

import pytest

from services.chat.ChatService import FALLBACK_ANSWER, PREVIEW_LENGTH, build_prompt, to_citation
from shared.clients.rag.models.VectorPoint import VectorMatch, VectorPoint, VectorRecord
from shared.exceptions import LLMError, NotFoundError, NotReadyError, ValidationError
from shared.models.chat import ChatMessage
from shared.models.document import Document, ProcessingStatus

from conftest import fake_vector

LONG_TEXT = "The warranty period is two years from the date of purchase. " * 5


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def ready_document(documents, rag_client):
    """A completed document with three indexed chunks."""
    document = Document(
        id="pdf-1",
        owner_id="owner-1",
        filename="manual.pdf",
        original_name="manual.pdf",
        file_size=100,
        page_count=2,
        processing_status=ProcessingStatus.COMPLETED,
        embedding_status=ProcessingStatus.COMPLETED,
    )
    await documents.create(document)
    texts = [(LONG_TEXT, 1), ("Returns are accepted within thirty days.", 2), ("Shipping is free.", 2)]
    await rag_client.do_upsert([
        VectorRecord(
            id=str(uuid.uuid4()),
            vector=fake_vector(text),
            payload=VectorPoint(
                pdf_id=document.id,
                owner_id=document.owner_id,
                text=text,
                page_number=page,
                chunk_index=index,
                created_at="2024-01-01T00:00:00+00:00",
            ),
        )
        for index, (text, page) in enumerate(texts)
    ])
    return document


def _match(text: str, page: int = 1, score: float = 0.9) -> VectorMatch:
    return VectorMatch(id="m", score=score, pdf_id="pdf-1", text=text, page_number=page, chunk_index=0)


# ---------------------------------------------------------------------------
# Prompt and citations
# ---------------------------------------------------------------------------

class TestPrompt:

    def test_prompt_layout(self):
        prompt = build_prompt("What is covered?", [_match("alpha", 1), _match("beta", 3)], [])
        assert prompt.startswith("You are a helpful AI assistant")
        assert "[Context 1 - Page 1]:\nalpha" in prompt
        assert "[Context 2 - Page 3]:\nbeta" in prompt
        assert "Previous conversation:" not in prompt
        assert prompt.index("Context from the PDF document:") < prompt.index("User's question:")
        assert prompt.rstrip().endswith("Answer:")

    def test_prompt_includes_history(self):
        history = [ChatMessage(role="user", content="first question"), ChatMessage(role="assistant", content="first answer")]
        prompt = build_prompt("follow up", [_match("alpha")], history)
        assert "Previous conversation:" in prompt
        assert prompt.index("first question") < prompt.index("first answer") < prompt.index("Context from the PDF document:")

    def test_citation_preview_is_truncated(self):
        citation = to_citation(_match(LONG_TEXT, page=4, score=0.5))
        assert citation.content == LONG_TEXT[:PREVIEW_LENGTH] + "..."
        assert citation.page_number == 4
        assert citation.score == 0.5


# ---------------------------------------------------------------------------
# Answering
# ---------------------------------------------------------------------------

class TestSendMessage:

    async def test_answer_with_citations(self, chat_service, ready_document, fake_ollama, chats):
        reply = await chat_service.send_message("owner-1", "pdf-1", "How long is the warranty?")

        assert reply.answer == fake_ollama.chat_reply
        assert reply.cached is False
        assert len(reply.context) == 3
        assert {c.page_number for c in reply.context} == {1, 2}
        assert all(c.content.endswith("...") for c in reply.context)

        session = await chats.get(reply.session_id)
        assert [m.role for m in session.messages] == ["user", "assistant"]
        assert session.messages[0].content == "How long is the warranty?"
        assert session.messages[1].context == reply.context

    async def test_question_is_trimmed(self, chat_service, ready_document, chats):
        reply = await chat_service.send_message("owner-1", "pdf-1", "   How long is the warranty?  ")
        session = await chats.get(reply.session_id)
        assert session.messages[0].content == "How long is the warranty?"

    async def test_repeat_question_is_served_from_cache(self, chat_service, ready_document, fake_ollama, fake_redis):
        first = await chat_service.send_message("owner-1", "pdf-1", "How long is the warranty?")
        second = await chat_service.send_message("owner-1", "pdf-1", "  how long is the WARRANTY?", session_id=first.session_id)

        assert second.cached is True
        assert second.answer == first.answer
        assert second.context == first.context
        assert len(fake_ollama.chat_requests) == 1
        assert len(fake_redis.store) == 1

    async def test_malformed_cache_entry_is_ignored(self, chat_service, ready_document, cache, fake_ollama):
        await cache.set(cache.build_answer_key("pdf-1", "How long is the warranty?"), {"unexpected": True})
        reply = await chat_service.send_message("owner-1", "pdf-1", "How long is the warranty?")
        assert reply.cached is False
        assert len(fake_ollama.chat_requests) == 1

    async def test_fallback_when_nothing_retrieved(self, chat_service, documents, fake_ollama, fake_redis, chats):
        await documents.create(
            Document(
                id="pdf-empty",
                owner_id="owner-1",
                filename="empty.pdf",
                original_name="empty.pdf",
                file_size=10,
                processing_status=ProcessingStatus.COMPLETED,
                embedding_status=ProcessingStatus.COMPLETED,
            )
        )
        reply = await chat_service.send_message("owner-1", "pdf-empty", "Anything?")

        assert reply.answer == FALLBACK_ANSWER
        assert reply.context == []
        assert fake_ollama.chat_requests == []
        assert fake_redis.store == {}
        assert (await chats.get(reply.session_id)).messages == []

    async def test_history_is_limited_in_prompt(self, chat_service, ready_document, chats, fake_ollama):
        reply = await chat_service.send_message("owner-1", "pdf-1", "question 0")
        for i in range(1, 4):
            await chat_service.send_message("owner-1", "pdf-1", f"question {i}", session_id=reply.session_id)

        prompt = fake_ollama.chat_requests[-1]["messages"][0]["content"]
        # six earlier messages exist, only the last five are sent
        assert "question 0" not in prompt
        assert "question 1" in prompt
        assert "question 2" in prompt
        assert len((await chats.get(reply.session_id)).messages) == 8

    async def test_provider_error_propagates_and_records_nothing(self, chat_service, ready_document, fake_ollama, chats, fake_redis):
        fake_ollama.chat_status = 500
        with pytest.raises(LLMError):
            await chat_service.send_message("owner-1", "pdf-1", "How long is the warranty?")
        assert fake_redis.store == {}
        sessions = await chats.list_by_owner("owner-1")
        assert all(session.messages == [] for session in sessions)


class TestSendMessageErrors:

    async def test_document_not_ready(self, chat_service, documents):
        await documents.create(
            Document(id="pdf-2", owner_id="owner-1", filename="a.pdf", original_name="a.pdf", file_size=1)
        )
        with pytest.raises(NotReadyError) as info:
            await chat_service.send_message("owner-1", "pdf-2", "Hello?")
        assert info.value.processing_status == "pending"
        assert info.value.embedding_status == "pending"

    async def test_unknown_or_foreign_document(self, chat_service, ready_document):
        with pytest.raises(NotFoundError):
            await chat_service.send_message("owner-1", "missing", "Hello?")
        with pytest.raises(NotFoundError):
            await chat_service.send_message("owner-2", "pdf-1", "Hello?")

    @pytest.mark.parametrize("message", ["", "   ", "x" * 2001])
    async def test_invalid_message(self, chat_service, ready_document, message):
        with pytest.raises(ValidationError):
            await chat_service.send_message("owner-1", "pdf-1", message)

    async def test_invalid_session_id(self, chat_service, ready_document):
        with pytest.raises(ValidationError, match="session"):
            await chat_service.send_message("owner-1", "pdf-1", "Hello?", session_id="not-a-uuid")

    async def test_session_of_another_owner(self, chat_service, ready_document, chats):
        reply = await chat_service.send_message("owner-1", "pdf-1", "How long is the warranty?")
        with pytest.raises(NotFoundError):
            await chat_service.send_message("owner-2", "pdf-1", "Hello?", session_id=reply.session_id)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class TestSessions:

    async def test_history_and_document_sessions(self, chat_service, ready_document):
        first = await chat_service.send_message("owner-1", "pdf-1", "How long is the warranty?")
        second = await chat_service.send_message("owner-1", "pdf-1", "Is shipping free?")

        history = await chat_service.get_history("owner-1")
        assert [s.session_id for s in history] == [second.session_id, first.session_id]
        assert await chat_service.get_history("owner-2") == []
        assert len(await chat_service.list_document_sessions("owner-1", "pdf-1")) == 2

    async def test_get_and_delete_session(self, chat_service, ready_document):
        reply = await chat_service.send_message("owner-1", "pdf-1", "How long is the warranty?")
        session = await chat_service.get_session("owner-1", reply.session_id)
        assert len(session.messages) == 2

        with pytest.raises(NotFoundError):
            await chat_service.delete_session("owner-2", reply.session_id)
        await chat_service.delete_session("owner-1", reply.session_id)
        with pytest.raises(NotFoundError):
            await chat_service.get_session("owner-1", reply.session_id)

    async def test_document_sessions_of_unknown_document(self, chat_service):
        with pytest.raises(NotFoundError):
            await chat_service.list_document_sessions("owner-1", "missing")
