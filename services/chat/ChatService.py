"""Retrieval and answer composition.

Answers a question about one document: embed the question, fetch the most
similar chunks of that document, and have the language model answer from
those chunks only. Answers are cached per (document, normalized question)
and appended to the asker's chat session.
"""

import uuid

from pydantic import ValidationError as PydanticValidationError

from shared.cache.ResponseCache import ResponseCache
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import VectorMatch
from shared.exceptions import NotFoundError, NotReadyError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import ChatAnswer, ChatMessage, ChatReply, ChatSession, ContextCitation
from shared.repositories.ChatRepositoryInterface import ChatRepositoryInterface
from shared.repositories.DocumentRepositoryInterface import DocumentRepositoryInterface

FALLBACK_ANSWER = "I couldn't find relevant information in the PDF to answer your question."
PREVIEW_LENGTH = 200

PROMPT_INSTRUCTIONS = """Instructions:
1. Answer the question based ONLY on the provided context
2. If the context doesn't contain enough information to answer the question, say so
3. Be concise and accurate
4. If referencing specific information, mention the page number
5. Maintain a helpful and professional tone"""


def build_prompt(question: str, matches: list[VectorMatch], history: list[ChatMessage]) -> str:
    """Assemble the single prompt sent to the language model.

    Args:
        question (str): The user's question.
        matches (list[VectorMatch]): Retrieved chunks, best first.
        history (list[ChatMessage]): Prior messages to include, oldest first.

    Returns:
        str: The prompt text.
    """
    context = "\n\n".join(
        f"[Context {i} - Page {match.page_number}]:\n{match.text}"
        for i, match in enumerate(matches, start=1)
    )
    conversation = "\n".join(
        f"{'User' if message.role == 'user' else 'Assistant'}: {message.content}"
        for message in history
    )

    parts = ["You are a helpful AI assistant that answers questions based on the provided PDF document context."]
    if conversation:
        parts.append(f"Previous conversation:\n{conversation}")
    parts.append(f"Context from the PDF document:\n{context}")
    parts.append(f"User's question: {question}")
    parts.append(PROMPT_INSTRUCTIONS)
    parts.append("Answer:")
    return "\n\n".join(parts)


def to_citation(match: VectorMatch) -> ContextCitation:
    """Truncated preview of a match; full chunk text stays internal."""
    return ContextCitation(
        page_number=match.page_number,
        content=match.text[:PREVIEW_LENGTH] + "...",
        score=match.score,
    )


class ChatService:
    """Question answering over ingested documents, plus chat session access."""

    def __init__(
        self,
        helper_config: HelperConfig,
        documents: DocumentRepositoryInterface,
        chats: ChatRepositoryInterface,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        llm_client: LLMClientInterface,
        cache: ResponseCache,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._documents = documents
        self._chats = chats
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._llm_client = llm_client
        self._cache = cache
        self.top_k = helper_config.get_int_val("CHAT_TOP_K", default=5, minimum=1)
        self.history_limit = helper_config.get_int_val("CHAT_HISTORY_LIMIT", default=5, minimum=0)
        self.max_message_length = helper_config.get_int_val("CHAT_MAX_MESSAGE_LENGTH", default=2000, minimum=1)

    ##########################################
    ############### VALIDATION ###############
    ##########################################

    def _validate_message(self, message: str | None) -> str:
        question = (message or "").strip()
        if not 1 <= len(question) <= self.max_message_length:
            raise ValidationError(f"Message must be between 1 and {self.max_message_length} characters.")
        return question

    @staticmethod
    def _validate_session_id(session_id: str | None) -> None:
        if session_id is None:
            return
        try:
            uuid.UUID(session_id)
        except ValueError as e:
            raise ValidationError("Invalid session ID.") from e

    ##########################################
    ################ ANSWER ##################
    ##########################################

    async def _get_ready_document(self, owner_id: str, document_id: str) -> None:
        document = await self._documents.get_for_owner(document_id, owner_id)
        if document is None:
            raise NotFoundError(f"PDF {document_id} not found.")
        if not document.is_ready():
            raise NotReadyError(document_id, document.processing_status.value, document.embedding_status.value)

    async def answer(
        self,
        owner_id: str,
        document_id: str,
        question: str,
        history: list[ChatMessage] | None = None,
    ) -> tuple[ChatAnswer, bool]:
        """Answer a question from one document's chunks.

        Args:
            owner_id (str): Asking user; the document must belong to them.
            document_id (str): Document to answer from.
            question (str): Already validated question.
            history (list[ChatMessage] | None): Session messages, oldest first.

        Returns:
            tuple[ChatAnswer, bool]: The answer and whether it came from the cache.
                A fallback answer has an empty context.

        Raises:
            NotFoundError: If the document does not exist for this owner.
            NotReadyError: If ingestion of the document has not completed.
            EmbeddingError, VectorIndexError, LLMError: Provider failures.
        """
        await self._get_ready_document(owner_id, document_id)
        return await self._compose(document_id, question, history or [])

    async def _compose(self, document_id: str, question: str, history: list[ChatMessage]) -> tuple[ChatAnswer, bool]:
        cache_key = self._cache.build_answer_key(document_id, question)
        cached = await self._cache.get(cache_key)
        if cached is not None:
            try:
                result = ChatAnswer.model_validate(cached)
                self.logging.info("Returning cached answer for PDF %s", document_id)
                return result, True
            except PydanticValidationError:
                self.logging.warning("Discarding malformed cache entry %s", cache_key)

        vector = await self._embed_client.do_embed(question)
        matches = await self._rag_client.do_query(vector, document_id, top_k=self.top_k)
        if not matches:
            self.logging.info("No relevant chunks found in PDF %s", document_id)
            return ChatAnswer(answer=FALLBACK_ANSWER, context=[]), False

        recent = history[-self.history_limit:] if self.history_limit else []
        reply = await self._llm_client.do_generate(build_prompt(question, matches, recent))

        result = ChatAnswer(answer=reply, context=[to_citation(match) for match in matches])
        await self._cache.set(cache_key, result.model_dump(mode="json"))
        return result, False

    async def send_message(
        self,
        owner_id: str,
        document_id: str,
        message: str,
        session_id: str | None = None,
    ) -> ChatReply:
        """Answer a question and record the exchange in a chat session.

        The session is created on first use. A fallback answer (nothing
        relevant retrieved) is returned but neither cached nor recorded.

        Raises:
            ValidationError: If the message or session id is malformed.
            NotFoundError: If the document, or a given session, is unknown to this owner.
            NotReadyError: If the document is not ready.
        """
        question = self._validate_message(message)
        self._validate_session_id(session_id)

        await self._get_ready_document(owner_id, document_id)
        session = await self._get_or_create_session(owner_id, document_id, session_id)
        result, cached = await self._compose(document_id, question, session.messages)

        if result.context:
            await self._chats.append_messages(
                session.session_id,
                [
                    ChatMessage(role="user", content=question),
                    ChatMessage(role="assistant", content=result.answer, context=result.context),
                ],
            )
            self.logging.info("Chat message processed for PDF %s", document_id)

        return ChatReply(answer=result.answer, context=result.context, session_id=session.session_id, cached=cached)

    async def _get_or_create_session(self, owner_id: str, document_id: str, session_id: str | None) -> ChatSession:
        if session_id is not None:
            session = await self._chats.get(session_id)
            if session is not None:
                if session.owner_id != owner_id or session.document_id != document_id:
                    raise NotFoundError("Chat session not found.")
                return session

        session = ChatSession(session_id=session_id or str(uuid.uuid4()), owner_id=owner_id, document_id=document_id)
        return await self._chats.create(session)

    ##########################################
    ############### SESSIONS #################
    ##########################################

    async def get_history(self, owner_id: str, limit: int = 20) -> list[ChatSession]:
        """Most recently active sessions of an owner."""
        return await self._chats.list_by_owner(owner_id, limit=limit)

    async def get_session(self, owner_id: str, session_id: str) -> ChatSession:
        session = await self._chats.get_for_owner(session_id, owner_id)
        if session is None:
            raise NotFoundError("Chat session not found.")
        return session

    async def list_document_sessions(self, owner_id: str, document_id: str) -> list[ChatSession]:
        if await self._documents.get_for_owner(document_id, owner_id) is None:
            raise NotFoundError(f"PDF {document_id} not found.")
        return await self._chats.list_by_document(owner_id, document_id)

    async def delete_session(self, owner_id: str, session_id: str) -> None:
        await self.get_session(owner_id, session_id)
        await self._chats.delete(session_id)
        self.logging.info("Deleted chat session %s", session_id)
