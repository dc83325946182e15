from abc import ABC, abstractmethod

from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import ChatMessage, ChatSession


class ChatRepositoryInterface(ABC):
    """Persistence of chat sessions, keyed by session id."""

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()

    @abstractmethod
    async def get(self, session_id: str) -> ChatSession | None:
        pass

    @abstractmethod
    async def create(self, session: ChatSession) -> ChatSession:
        pass

    @abstractmethod
    async def append_messages(self, session_id: str, messages: list[ChatMessage]) -> ChatSession | None:
        """Append messages to the end of a session, in the given order.

        Returns:
            ChatSession | None: The updated session, or None if it does not exist.
        """
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        pass

    @abstractmethod
    async def list_by_owner(self, owner_id: str, limit: int = 20) -> list[ChatSession]:
        """Active sessions of an owner, most recently updated first."""
        pass

    @abstractmethod
    async def list_by_document(self, owner_id: str, document_id: str) -> list[ChatSession]:
        """Active sessions of an owner about one document, most recently updated first."""
        pass

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete every session of a document. Returns the number removed."""
        pass

    async def get_for_owner(self, session_id: str, owner_id: str) -> ChatSession | None:
        session = await self.get(session_id)
        if session is None or session.owner_id != owner_id:
            return None
        return session
