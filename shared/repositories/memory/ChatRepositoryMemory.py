"""In-process chat session store, for development and tests."""

from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import ChatMessage, ChatSession
from shared.models.document import utcnow
from shared.repositories.ChatRepositoryInterface import ChatRepositoryInterface


class ChatRepositoryMemory(ChatRepositoryInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._sessions: dict[str, ChatSession] = {}

    async def get(self, session_id: str) -> ChatSession | None:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def create(self, session: ChatSession) -> ChatSession:
        self._sessions[session.session_id] = session.model_copy(deep=True)
        return session

    async def append_messages(self, session_id: str, messages: list[ChatMessage]) -> ChatSession | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        session.messages.extend(message.model_copy(deep=True) for message in messages)
        session.updated_at = utcnow()
        return session.model_copy(deep=True)

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def list_by_owner(self, owner_id: str, limit: int = 20) -> list[ChatSession]:
        sessions = [s for s in self._sessions.values() if s.owner_id == owner_id and s.is_active]
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return [s.model_copy(deep=True) for s in sessions[:limit]]

    async def list_by_document(self, owner_id: str, document_id: str) -> list[ChatSession]:
        sessions = [
            s for s in self._sessions.values()
            if s.owner_id == owner_id and s.document_id == document_id and s.is_active
        ]
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return [s.model_copy(deep=True) for s in sessions]

    async def delete_by_document(self, document_id: str) -> int:
        doomed = [sid for sid, s in self._sessions.items() if s.document_id == document_id]
        for session_id in doomed:
            del self._sessions[session_id]
        return len(doomed)
